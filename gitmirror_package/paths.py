"""
Where every generated document lives in the output tree.

    index.html
    assets/<theme-name>.css
    tree/<ref>/<path>.html        (tree/<ref>/index.html for the root)
    blob/<ref>/<path>.html
    commits/<ref>/page-<n>.html   (n starts at 1)
    tags/index.html

Every function here is pure, so a link can be computed before its target has
been rendered. Ref names and path segments are percent-escaped before being
joined with "/"; "%" itself is escaped, which keeps the mapping injective.
A directory segment ending in ".html" gets its dot escaped, so a directory
never has to live where a sibling page file already is.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Tuple
from urllib.parse import quote

SAFE_CHARS = "-_.~@+=,"
PAGE_SUFFIX = ".html"


class PageKind(str, Enum):
    HOME = "home"
    ASSET = "asset"
    TREE = "tree"
    BLOB = "blob"
    COMMITS = "commits"
    TAGS = "tags"


def escape_segment(segment: str) -> str:
    # names read from git may carry undecodable bytes as surrogates
    escaped = quote(segment, safe=SAFE_CHARS, encoding="utf-8", errors="surrogateescape")
    if escaped and set(escaped) == {"."}:
        escaped = "%2E" * len(escaped)
    return escaped


def split_path(path: str) -> Tuple[str, ...]:
    return tuple(s for s in path.split("/") if s)


def _escaped_path(path: str) -> str:
    segments = [escape_segment(s) for s in split_path(path)]
    # a directory segment must never equal the ".html" page of a sibling
    for i, segment in enumerate(segments[:-1]):
        if segment.endswith(PAGE_SUFFIX):
            segments[i] = segment[: -len(PAGE_SUFFIX)] + "%2Ehtml"
    return "/".join(segments)


@lru_cache(maxsize=None)
def mirror_path(kind: PageKind, ref: str | None = None, target: str | int | None = None) -> str:
    """
    Output-relative path for a document.

    `target` is the repository path for TREE / BLOB, the page number for
    COMMITS and the theme name for ASSET; it is ignored otherwise.
    """
    if kind is PageKind.HOME:
        return "index.html"
    if kind is PageKind.TAGS:
        return "tags/index.html"
    if kind is PageKind.ASSET:
        if not target:
            raise ValueError("asset path needs a theme name")
        return f"assets/{escape_segment(str(target))}.css"

    if not ref:
        raise ValueError(f"{kind.value} path needs a ref")
    ref_part = escape_segment(ref)

    if kind is PageKind.COMMITS:
        if not isinstance(target, int) or isinstance(target, bool) or target < 1:
            raise ValueError(f"commit log pages start at 1, got {target!r}")
        return f"commits/{ref_part}/page-{target}.html"

    rel = _escaped_path(str(target or ""))
    if kind is PageKind.TREE:
        if not rel:
            return f"tree/{ref_part}/index.html"
        if rel == "index":
            # a top-level directory called "index" must not land on the root page
            rel = "%69ndex"
        return f"tree/{ref_part}/{rel}.html"
    if kind is PageKind.BLOB:
        if not rel:
            raise ValueError("blob path must not be empty")
        return f"blob/{ref_part}/{rel}.html"
    raise ValueError(f"unknown page kind {kind!r}")


def relative_href(from_path: str, to_path: str) -> str:
    """URL for a link on page `from_path` pointing at page `to_path`."""
    rel = posixpath.relpath(to_path, posixpath.dirname(from_path) or ".")
    # files on disk may contain "%", so the link must escape it again
    return quote(rel, safe="/")


class PathMirror:
    """Output paths and cross-page links for one site build."""

    def __init__(self, default_ref: str | None, theme_slug: str):
        self.default_ref = default_ref
        self.theme_slug = theme_slug

    def home(self) -> str:
        return mirror_path(PageKind.HOME)

    def stylesheet(self) -> str:
        return mirror_path(PageKind.ASSET, target=self.theme_slug)

    def tags(self) -> str:
        return mirror_path(PageKind.TAGS)

    def tree(self, ref: str, path: str = "") -> str:
        return mirror_path(PageKind.TREE, ref, "/".join(split_path(path)))

    def blob(self, ref: str, path: str) -> str:
        return mirror_path(PageKind.BLOB, ref, "/".join(split_path(path)))

    def commits(self, ref: str, page: int = 1) -> str:
        return mirror_path(PageKind.COMMITS, ref, page)

    def tree_target(self, ref: str, path: str = "") -> str:
        """Link target for a directory; the default ref's root folds into the home page."""
        if ref == self.default_ref and not split_path(path):
            return self.home()
        return self.tree(ref, path)

    def href(self, from_path: str, to_path: str) -> str:
        return relative_href(from_path, to_path)


# -- pagination --------------------------------------------------------------

def page_count(total: int, page_size: int) -> int:
    """Number of commit log pages; an empty history still gets page 1."""
    if page_size < 1:
        raise ValueError("page size must be positive")
    if total <= 0:
        return 1
    return (total + page_size - 1) // page_size


def page_bounds(page: int, page_size: int) -> Tuple[int, int]:
    """Half-open [start, end) slice of the history shown on `page`."""
    if page < 1:
        raise ValueError("pages start at 1")
    return (page - 1) * page_size, page * page_size


@dataclass(frozen=True)
class PageLinks:
    page: int
    count: int
    newer: int | None
    older: int | None


def page_links(page: int, total: int, page_size: int) -> PageLinks:
    count = page_count(total, page_size)
    if not 1 <= page <= count:
        raise ValueError(f"page {page} out of range 1..{count}")
    return PageLinks(
        page=page,
        count=count,
        newer=page - 1 if page > 1 else None,
        older=page + 1 if page < count else None,
    )
