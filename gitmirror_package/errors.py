"""Exceptions raised while building a site."""

from __future__ import annotations


class GitMirrorError(Exception):
    """Base class for every error this package raises."""


class ConfigError(GitMirrorError):
    pass


class UnreadableRepository(GitMirrorError):
    """The configured path is not a git repository we can read."""


class CorruptObject(GitMirrorError):
    """An object in the store could not be read or decoded."""

    def __init__(self, oid: str, reason: str):
        super().__init__(f"Corrupt object {oid}: {reason}")
        self.oid = oid
        self.reason = reason


class NotFound(GitMirrorError):
    pass


class ThemeNotFound(GitMirrorError):
    def __init__(self, name: str, available: list[str]):
        shown = ", ".join(available[:8])
        super().__init__(
            f"Theme '{name}' not found. Built-in themes include: {shown}. "
            f"Or pass a path to a .tmTheme / .json theme file."
        )
        self.name = name


class ThemeParseError(GitMirrorError):
    def __init__(self, source: str, reason: str):
        super().__init__(f"Failed to parse theme {source}: {reason}")
        self.source = source
        self.reason = reason


class PageRenderError(GitMirrorError):
    """A single page could not be rendered; the build substitutes a placeholder."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to render {path}: {reason}")
        self.path = path
        self.reason = reason
