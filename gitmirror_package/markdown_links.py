"""
Python-Markdown extension that points relative links and images in a rendered
document at the mirrored pages of the same ref.

The extension only computes the repository path a link refers to; turning
that path into a URL is left to the `resolve` callback, which returns None to
leave a link untouched.
"""

from __future__ import annotations

from typing import Callable
from urllib.parse import unquote, urlsplit

from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

# (repository path, is image, link ends with "/") -> url or None
Resolver = Callable[[str, bool, bool], "str | None"]


def is_relative_link(link: str) -> bool:
    if not link or link.startswith(("#", "/")):
        return False
    parts = urlsplit(link)
    return not parts.scheme and not parts.netloc


def resolve_repo_path(base_dir: str, link: str) -> str | None:
    """Repository path `link` names when written in a file under `base_dir`; None if it leaves the repository."""
    parts = [p for p in base_dir.split("/") if p]
    for segment in link.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                return None
            parts.pop()
        else:
            parts.append(segment)
    return "/".join(parts)


class RelativeLinkProcessor(Treeprocessor):
    def __init__(self, md, base_dir: str, resolve: Resolver):
        super().__init__(md)
        self.base_dir = base_dir
        self.resolve = resolve

    def run(self, root):
        for element in root.iter("a"):
            self._rewrite(element, "href", image=False)
        for element in root.iter("img"):
            self._rewrite(element, "src", image=True)

    def _rewrite(self, element, attribute: str, image: bool) -> None:
        link = element.get(attribute)
        if not is_relative_link(link):
            return
        parts = urlsplit(link)
        target = resolve_repo_path(self.base_dir, unquote(parts.path))
        if target is None:
            return
        url = self.resolve(target, image, parts.path.endswith("/"))
        if url is None:
            return
        if parts.fragment and not image:
            url = f"{url}#{parts.fragment}"
        element.set(attribute, url)


class RelativeLinkExtension(Extension):
    def __init__(self, base_dir: str, resolve: Resolver, **kwargs):
        self.base_dir = base_dir
        self.resolve = resolve
        super().__init__(**kwargs)

    def extendMarkdown(self, md):
        # after inline patterns (20) have created the <a> / <img> elements
        md.treeprocessors.register(RelativeLinkProcessor(md, self.base_dir, self.resolve), "relative_links", 8)
