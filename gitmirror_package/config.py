"""Resolved build configuration handed to the pipeline by the CLI or MCP server."""

from __future__ import annotations

import pathlib
from dataclasses import dataclass

from .errors import ConfigError
from .themes import DEFAULT_THEME

DEFAULT_PAGE_SIZE = 35
MAX_DEFAULT_BYTES = 1024 * 1024


@dataclass
class SiteConfig:
    repo: pathlib.Path = pathlib.Path(".")
    output: pathlib.Path = pathlib.Path("dist")
    name: str | None = None
    owner: str | None = None
    theme: str | None = DEFAULT_THEME
    page_size: int = DEFAULT_PAGE_SIZE
    default_ref: str | None = None
    max_blob_bytes: int = MAX_DEFAULT_BYTES
    jobs: int = 1

    def __post_init__(self) -> None:
        self.repo = pathlib.Path(self.repo)
        self.output = pathlib.Path(self.output)

    def validate(self) -> None:
        if not self.repo.exists():
            raise ConfigError(f"Repository path does not exist: {self.repo}")
        if self.page_size < 1:
            raise ConfigError(f"Page size must be positive, got {self.page_size}")
        if self.max_blob_bytes < 1:
            raise ConfigError(f"Max blob size must be positive, got {self.max_blob_bytes}")
        if self.jobs < 1:
            raise ConfigError(f"Worker count must be positive, got {self.jobs}")

    def project_name(self) -> str:
        """Explicit name, or the repository directory name."""
        if self.name:
            return self.name
        path = self.repo.resolve()
        if not path.name:
            raise ConfigError(f"Cannot extract project name from path: {path}")
        return path.name
