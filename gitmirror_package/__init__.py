"""
gitmirror - turn a local git repository into a browsable static website.
"""

from .config import SiteConfig
from .errors import (
    ConfigError,
    CorruptObject,
    GitMirrorError,
    NotFound,
    PageRenderError,
    ThemeNotFound,
    ThemeParseError,
    UnreadableRepository,
)
from .site import BuildReport, build_site

__version__ = "0.1.0"

__all__ = [
    "BuildReport",
    "ConfigError",
    "CorruptObject",
    "GitMirrorError",
    "NotFound",
    "PageRenderError",
    "SiteConfig",
    "ThemeNotFound",
    "ThemeParseError",
    "UnreadableRepository",
    "build_site",
]
