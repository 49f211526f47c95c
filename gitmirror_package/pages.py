"""
HTML documents for the site: home, tree listings, blob views, paginated
commit logs and the tag index. Every href comes from PathMirror.
"""

from __future__ import annotations

import base64
import html
import logging
import pathlib
import posixpath
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Sequence

import markdown  # Python-Markdown

from .errors import NotFound, PageRenderError
from .highlight import Highlighter
from .markdown_links import RelativeLinkExtension
from .paths import PageKind, PathMirror, page_bounds, page_count, page_links, split_path
from .repository import Blob, Commit, EntryKind, Reference, RepositoryModel, TreeEntry

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = {".md", ".markdown", ".mdown", ".mkd", ".mkdn"}
README_NAMES = ["README.md", "README", "readme.md", "Readme.md", "README.markdown"]
IMAGE_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".ico": "image/x-icon",
    ".svg": "image/svg+xml",
}

SITE_CSS = """
:root {
  --bg-primary: #ffffff;
  --bg-secondary: #f8fafc;
  --bg-tertiary: #f1f5f9;
  --text-primary: #0f172a;
  --text-secondary: #475569;
  --text-tertiary: #94a3b8;
  --text-accent: #3b82f6;
  --border-light: #e2e8f0;
  --radius-sm: 8px;
  --radius-md: 12px;
}
* { box-sizing: border-box; }
body {
  font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
  margin: 0; line-height: 1.6; font-size: 14px;
  color: var(--text-primary); background: var(--bg-secondary);
}
a { color: var(--text-accent); text-decoration: none; }
a:hover { text-decoration: underline; }
code, pre { font-family: 'JetBrains Mono', ui-monospace, SFMono-Regular, Menlo, monospace; }
.container { max-width: 1200px; margin: 0 auto; padding: 0 2rem; }
.site-header { background: var(--bg-primary); border-bottom: 1px solid var(--border-light); padding: 1rem 0; }
.site-header .project { font-size: 1.2rem; font-weight: 600; }
.site-header nav a { margin-right: 1rem; }
.muted { color: var(--text-tertiary); }
.breadcrumb { margin: 1rem 0; font-family: monospace; }
.breadcrumb .sep { color: var(--text-tertiary); margin: 0 0.25rem; }
.ref-badge { display: inline-block; padding: 0 0.5rem; border-radius: var(--radius-sm);
  background: var(--bg-tertiary); border: 1px solid var(--border-light); font-family: monospace; }
.panel { background: var(--bg-primary); border: 1px solid var(--border-light);
  border-radius: var(--radius-md); margin: 1rem 0; overflow: hidden; }
.panel h2 { font-size: 1rem; margin: 0; padding: 0.75rem 1rem; border-bottom: 1px solid var(--border-light); }
.file-table { width: 100%; border-collapse: collapse; }
.file-table td { padding: 0.4rem 1rem; border-top: 1px solid var(--border-light); }
.file-table tr:first-child td { border-top: none; }
.file-table .size { text-align: right; color: var(--text-tertiary); white-space: nowrap; }
.file-table .last-commit { color: var(--text-secondary); }
.file-table .date { color: var(--text-tertiary); white-space: nowrap; }
.commit-list { list-style: none; margin: 0; padding: 0; }
.commit-list li { padding: 0.6rem 1rem; border-top: 1px solid var(--border-light); }
.commit-list li:first-child { border-top: none; }
.commit-meta { color: var(--text-secondary); font-size: 0.85rem; }
.badge { font-size: 0.75rem; padding: 0 0.4rem; border-radius: var(--radius-sm); background: var(--bg-tertiary); }
.pager { display: flex; justify-content: space-between; margin: 1rem 0; }
.empty-state { padding: 1rem; color: var(--text-tertiary); font-style: italic; }
.highlight { margin: 0; padding: 1rem 0; overflow-x: auto; }
.highlight .line { display: block; padding-right: 1rem; }
.highlight .line:target { background: rgba(250, 204, 21, 0.25); }
.highlight .ln { display: inline-block; width: 4rem; padding-right: 1rem; text-align: right;
  color: var(--text-tertiary); user-select: none; }
.markdown-content { padding: 1rem 2rem; }
.placeholder { padding: 2rem; text-align: center; color: var(--text-secondary); }
.blob-image { max-width: 100%; display: block; margin: 1rem auto; }
footer { margin: 2rem 0; color: var(--text-tertiary); font-size: 0.85rem; text-align: center; }
"""


@dataclass(frozen=True)
class RenderedPage:
    path: str
    content: bytes
    kind: PageKind


@dataclass(frozen=True)
class ProjectInfo:
    name: str
    owner: str | None = None


def bytes_human(n: int) -> str:
    """Human-readable bytes: 1 decimal for KiB and above, integer for B."""
    units = ["B", "KiB", "MiB", "GiB", "TiB"]
    f = float(n)
    i = 0
    while f >= 1024.0 and i < len(units) - 1:
        f /= 1024.0
        i += 1
    if i == 0:
        return f"{int(f)} {units[i]}"
    else:
        return f"{f:.1f} {units[i]}"


def format_timestamp(seconds: int) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def render_markdown_text(md_text: str, extensions: Iterable = ()) -> str:
    return markdown.markdown(md_text, extensions=["fenced_code", "tables", "toc", *extensions])


def encode_document(doc: str) -> bytes:
    # file names git could not decode carry surrogates; show them as U+FFFD
    return doc.encode("utf-8", "surrogateescape").decode("utf-8", "replace").encode("utf-8")


def sort_entries(entries: Sequence[TreeEntry]) -> List[TreeEntry]:
    """Directories first, then files; each group alphabetical."""
    return sorted(entries, key=lambda e: (e.kind is not EntryKind.DIRECTORY, e.name.lower(), e.name))


def join_path(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def site_stylesheet(theme_css: str) -> str:
    return SITE_CSS.lstrip() + "\n/* syntax highlighting */\n" + theme_css


class PageRenderer:
    def __init__(
        self,
        repo: RepositoryModel,
        highlighter: Highlighter,
        mirror: PathMirror,
        project: ProjectInfo,
        page_size: int,
        max_blob_bytes: int,
    ):
        self.repo = repo
        self.highlighter = highlighter
        self.mirror = mirror
        self.project = project
        self.page_size = page_size
        self.max_blob_bytes = max_blob_bytes
        self.warnings: List[str] = []

    # -- shared markup -----------------------------------------------------

    def _href(self, current: str, target: str) -> str:
        """Escaped link from page `current` to page `target`, ready for an attribute."""
        return html.escape(self.mirror.href(current, target))

    def _document(self, current: str, kind: PageKind, title: str, body: str,
                  ref: Reference | None = None) -> RenderedPage:
        log_ref = ref.key if ref is not None else self.mirror.default_ref
        nav = [f'<a href="{self._href(current, self.mirror.home())}">Files</a>']
        if log_ref:
            nav.append(f'<a href="{self._href(current, self.mirror.commits(log_ref))}">Commits</a>')
        nav.append(f'<a href="{self._href(current, self.mirror.tags())}">Tags</a>')
        owner = f'<span class="muted">{html.escape(self.project.owner)} / </span>' if self.project.owner else ""
        doc = f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>{html.escape(title)} - {html.escape(self.project.name)}</title>
<link rel="stylesheet" href="{self._href(current, self.mirror.stylesheet())}" />
</head>
<body>
<header class="site-header">
  <div class="container">
    <div class="project">{owner}<a href="{self._href(current, self.mirror.home())}">{html.escape(self.project.name)}</a></div>
    <nav>{' '.join(nav)}</nav>
  </div>
</header>
<main class="container">
{body}
</main>
<footer>Generated by gitmirror</footer>
</body>
</html>
"""
        return RenderedPage(path=current, content=encode_document(doc), kind=kind)

    def _breadcrumb(self, current: str, ref: Reference, path: str) -> str:
        parts = split_path(path)
        root = self.mirror.href(current, self.mirror.tree_target(ref.key, ""))
        crumbs = [f'<a href="{html.escape(root)}">{html.escape(self.project.name)}</a>']
        for i, part in enumerate(parts):
            if i == len(parts) - 1:
                crumbs.append(f"<strong>{html.escape(part)}</strong>")
            else:
                target = self.mirror.tree(ref.key, "/".join(parts[: i + 1]))
                crumbs.append(f'<a href="{html.escape(self.mirror.href(current, target))}">{html.escape(part)}</a>')
        sep = '<span class="sep">/</span>'
        return (
            f'<div class="breadcrumb">{sep.join(crumbs)} '
            f'<span class="ref-badge">{html.escape(ref.name)}</span></div>'
        )

    def _file_table(self, current: str, ref: Reference, path: str, entries: Sequence[TreeEntry],
                    changes: Mapping[str, Commit] | None = None) -> str:
        changes = changes or {}
        rows = []
        if split_path(path):
            parent = "/".join(split_path(path)[:-1])
            up = self._href(current, self.mirror.tree_target(ref.key, parent))
            rows.append(
                f'<tr><td><a href="{up}">..</a></td><td class="last-commit"></td>'
                f'<td class="date"></td><td class="size"></td></tr>'
            )
        for entry in sort_entries(entries):
            child = join_path(path, entry.name)
            if entry.kind is EntryKind.DIRECTORY:
                target = self.mirror.tree(ref.key, child)
                label = f"{entry.name}/"
                size = ""
            else:
                target = self.mirror.blob(ref.key, child)
                label = entry.name + (" →" if entry.kind is EntryKind.SYMLINK else "")
                size = bytes_human(entry.size or 0)
            last = changes.get(entry.name)
            subject = html.escape(last.subject) if last else ""
            date = format_timestamp(last.timestamp) if last else ""
            rows.append(
                f'<tr class="{entry.kind.value}"><td><a href="{self._href(current, target)}">{html.escape(label)}</a></td>'
                f'<td class="last-commit">{subject}</td><td class="date">{date}</td>'
                f'<td class="size">{size}</td></tr>'
            )
        if not rows:
            return '<p class="empty-state">Empty directory</p>'
        return '<table class="file-table">\n' + "\n".join(rows) + "\n</table>"

    def _commit_row(self, commit: Commit) -> str:
        merge = ' <span class="badge">merge</span>' if commit.is_merge else ""
        return (
            f'<li id="c-{commit.oid}"><code>{commit.short_oid}</code> '
            f"{html.escape(commit.subject)}{merge}"
            f'<div class="commit-meta">{html.escape(commit.author)} committed on '
            f"{format_timestamp(commit.timestamp)}</div></li>"
        )

    # -- pages -------------------------------------------------------------

    def home(self, ref: Reference | None) -> RenderedPage:
        current = self.mirror.home()
        if ref is None:
            body = '<p class="empty-state">This repository has no commits yet.</p>'
            return self._document(current, PageKind.HOME, self.project.name, body)

        entries = self.repo.tree(ref.target, "")
        branches = self.repo.branches()
        tags = self.repo.tags()
        latest = self.repo.history(ref, 0, 1)

        branch_links = " ".join(
            f'<a class="ref-badge" href="{self._href(current, self.mirror.tree_target(b.key))}">'
            f"{html.escape(b.name)}</a>"
            for b in branches
        )
        summary = [
            f'<div class="breadcrumb">Ref <span class="ref-badge">{html.escape(ref.name)}</span> '
            f'<a href="{self._href(current, self.mirror.commits(ref.key))}">{self.repo.commit_count(ref)} commits</a> '
            f'<a href="{self._href(current, self.mirror.tags())}">{len(tags)} tags</a></div>',
        ]
        if branch_links:
            summary.append(f'<div class="breadcrumb">Branches: {branch_links}</div>')
        if latest:
            summary.append(f'<div class="panel"><ol class="commit-list">{self._commit_row(latest[0])}</ol></div>')

        body = "\n".join(summary)
        changes = self.repo.last_changes(ref, "")
        body += f'\n<div class="panel">{self._file_table(current, ref, "", entries, changes)}</div>'
        readme = self._readme(current, ref, entries)
        if readme:
            body += f'\n<div class="panel"><h2>README</h2><div class="markdown-content">{readme}</div></div>'
        return self._document(current, PageKind.HOME, self.project.name, body, ref)

    def _readme(self, current: str, ref: Reference, entries: Sequence[TreeEntry]) -> str | None:
        by_name = {e.name: e for e in entries if e.kind is EntryKind.FILE}
        for name in README_NAMES:
            entry = by_name.get(name)
            if entry is None:
                continue
            if (entry.size or 0) > self.max_blob_bytes:
                self.warnings.append(f"README {name} on {ref.name} is too large to render")
                return None
            blob = self.repo.blob(entry.oid)
            if blob.text is None:
                return None
            try:
                return self._markdown(blob.text, current, ref, name)
            except Exception as e:
                logger.warning(f"Failed to render README {name} on {ref.name}: {e}")
                self.warnings.append(f"README {name} on {ref.name}: {e}")
                return None
        return None

    def tree(self, ref: Reference, path: str = "", entries: Sequence[TreeEntry] | None = None) -> RenderedPage:
        current = self.mirror.tree(ref.key, path)
        try:
            if entries is None:
                entries = self.repo.tree(ref.target, path)
            changes = self.repo.last_changes(ref, path)
        except NotFound as e:
            raise PageRenderError(current, str(e)) from e
        title = path or ref.name
        body = self._breadcrumb(current, ref, path)
        body += f'\n<div class="panel">{self._file_table(current, ref, path, entries, changes)}</div>'
        return self._document(current, PageKind.TREE, title, body, ref)

    def blob(self, ref: Reference, path: str, entry: TreeEntry) -> RenderedPage:
        current = self.mirror.blob(ref.key, path)
        name = split_path(path)[-1]
        size = entry.size or 0
        header = f"<h2>{html.escape(name)} <span class=\"muted\">({bytes_human(size)})</span></h2>"

        if size > self.max_blob_bytes:
            content = (
                f'<div class="placeholder">File too large to display ({bytes_human(size)}; '
                f"limit {bytes_human(self.max_blob_bytes)})</div>"
            )
        else:
            content = self._blob_content(current, ref, path, entry, self.repo.blob(entry.oid))

        body = self._breadcrumb(current, ref, path)
        body += f'\n<div class="panel">{header}\n{content}</div>'
        return self._document(current, PageKind.BLOB, path, body, ref)

    def _blob_content(self, current: str, ref: Reference, path: str, entry: TreeEntry, blob: Blob) -> str:
        suffix = pathlib.PurePosixPath(path).suffix.lower()
        if entry.kind is EntryKind.SYMLINK:
            target = blob.data.decode("utf-8", "replace")
            return f'<div class="placeholder">Symbolic link to <code>{html.escape(target)}</code></div>'
        if suffix in IMAGE_TYPES:
            data = base64.b64encode(blob.data).decode("ascii")
            return f'<img class="blob-image" alt="{html.escape(path)}" src="data:{IMAGE_TYPES[suffix]};base64,{data}" />'
        if blob.text is None:
            return f'<div class="placeholder">Binary file not shown ({bytes_human(blob.size)})</div>'

        parts = []
        if suffix in MARKDOWN_EXTENSIONS:
            try:
                parts.append(f'<div class="markdown-content">{self._markdown(blob.text, current, ref, path)}</div>')
            except Exception as e:
                raise PageRenderError(current, f"markdown rendering failed: {e}") from e
        parts.append(self._code(blob.text, path))
        return "\n".join(parts)

    def _code(self, text: str, path: str) -> str:
        lines = self.highlighter.highlight(text, path)
        out = []
        for number, line in enumerate(lines, 1):
            out.append(
                f'<span class="line" id="L{number}"><a class="ln" href="#L{number}">{number}</a>'
                f"{self.highlighter.render_line(line)}</span>"
            )
        return '<pre class="highlight"><code>' + "\n".join(out) + "</code></pre>"

    def _markdown(self, text: str, current: str, ref: Reference, path: str) -> str:
        """Render the Markdown file at `path`, pointing its relative links at this ref's pages."""

        def resolve(target: str, image: bool, directory: bool) -> str | None:
            if not target:
                return self.mirror.href(current, self.mirror.tree_target(ref.key, ""))
            parent, name = posixpath.split(target)
            try:
                entry = next((e for e in self.repo.tree(ref.target, parent) if e.name == name), None)
            except NotFound:
                return None
            if entry is None:
                return None
            if entry.kind is EntryKind.DIRECTORY:
                return self.mirror.href(current, self.mirror.tree_target(ref.key, target))
            if directory:
                return None
            if image:
                suffix = pathlib.PurePosixPath(name).suffix.lower()
                if entry.kind is not EntryKind.FILE or suffix not in IMAGE_TYPES:
                    return None
                if (entry.size or 0) > self.max_blob_bytes:
                    return None
                data = base64.b64encode(self.repo.blob(entry.oid).data).decode("ascii")
                return f"data:{IMAGE_TYPES[suffix]};base64,{data}"
            return self.mirror.href(current, self.mirror.blob(ref.key, target))

        return render_markdown_text(text, [RelativeLinkExtension(posixpath.dirname(path), resolve)])

    def commit_log(self, ref: Reference, page: int) -> RenderedPage:
        current = self.mirror.commits(ref.key, page)
        total = self.repo.commit_count(ref)
        links = page_links(page, total, self.page_size)
        start, end = page_bounds(page, self.page_size)
        commits = self.repo.history(ref, start, end - start)

        if commits:
            rows = "\n".join(self._commit_row(c) for c in commits)
            listing = f'<ol class="commit-list">\n{rows}\n</ol>'
        else:
            listing = '<p class="empty-state">No commits found</p>'

        pager = []
        if links.newer is not None:
            newer = self.mirror.href(current, self.mirror.commits(ref.key, links.newer))
            pager.append(f'<a class="newer" rel="prev" href="{html.escape(newer)}">← Newer</a>')
        else:
            pager.append("<span></span>")
        pager.append(f'<span class="muted">Page {links.page} of {links.count}</span>')
        if links.older is not None:
            older = self.mirror.href(current, self.mirror.commits(ref.key, links.older))
            pager.append(f'<a class="older" rel="next" href="{html.escape(older)}">Older →</a>')
        else:
            pager.append("<span></span>")

        root = self.mirror.href(current, self.mirror.tree_target(ref.key, ""))
        body = (
            f'<div class="breadcrumb"><a href="{html.escape(root)}">{html.escape(self.project.name)}</a>'
            f'<span class="sep">/</span>Commits <span class="ref-badge">{html.escape(ref.name)}</span> '
            f'<span class="muted">{total} commits</span></div>\n'
            f'<div class="panel">{listing}</div>\n'
            f'<div class="pager">{"".join(pager)}</div>'
        )
        return self._document(current, PageKind.COMMITS, f"Commits - {ref.name}", body, ref)

    def commit_logs(self, ref: Reference) -> List[RenderedPage]:
        count = page_count(self.repo.commit_count(ref), self.page_size)
        return [self.commit_log(ref, page) for page in range(1, count + 1)]

    def tags(self) -> RenderedPage:
        current = self.mirror.tags()
        rows = []
        for tag in self.repo.tags():
            commit = self.repo.commit(tag.target)
            link = html.escape(self.mirror.href(current, self.mirror.tree_target(tag.key, "")))
            rows.append(
                f'<li><a href="{link}"><strong>{html.escape(tag.name)}</strong></a> '
                f"<code>{commit.short_oid}</code> {html.escape(commit.subject)}"
                f'<div class="commit-meta">{format_timestamp(commit.timestamp)}</div></li>'
            )
        if rows:
            listing = '<ol class="commit-list">\n' + "\n".join(rows) + "\n</ol>"
        else:
            listing = '<p class="empty-state">No tags</p>'
        body = f'<div class="panel"><h2>Tags</h2>\n{listing}</div>'
        return self._document(current, PageKind.TAGS, "Tags", body)

    def error_page(self, path: str, kind: PageKind, reason: str) -> RenderedPage:
        body = (
            f'<div class="panel"><div class="placeholder">This page could not be rendered.'
            f"<br /><code>{html.escape(reason)}</code></div></div>"
        )
        return self._document(path, kind, "Error", body)
