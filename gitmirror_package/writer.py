"""Writes rendered artifacts under the output root, collecting failures instead of stopping."""

from __future__ import annotations

import logging
import pathlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IOFailure:
    path: str
    reason: str


@dataclass
class WriteResult:
    written: List[str] = field(default_factory=list)
    failures: List[IOFailure] = field(default_factory=list)


class Writer:
    def __init__(self, root: str | pathlib.Path, jobs: int = 1):
        self.root = pathlib.Path(root)
        self.jobs = jobs

    def destination(self, rel: str) -> pathlib.Path:
        rel_path = pathlib.PurePosixPath(rel)
        if rel_path.is_absolute() or ".." in rel_path.parts or not rel_path.parts:
            raise ValueError(f"refusing to write outside the output directory: {rel!r}")
        return self.root.joinpath(*rel_path.parts)

    def write(self, rel: str, content: bytes) -> IOFailure | None:
        try:
            dest = self.destination(rel)
            # concurrent writers may create the same directory; that is fine
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(content)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to write {rel}: {e}")
            return IOFailure(rel, str(e))
        logger.debug(f"Wrote {rel} ({len(content)} bytes)")
        return None

    def write_all(self, artifacts: Iterable[Tuple[str, bytes]]) -> WriteResult:
        artifacts = list(artifacts)
        if self.jobs > 1:
            with ThreadPoolExecutor(max_workers=self.jobs) as pool:
                outcomes = list(pool.map(lambda a: self.write(*a), artifacts))
        else:
            outcomes = [self.write(rel, content) for rel, content in artifacts]

        result = WriteResult()
        for (rel, _), failure in zip(artifacts, outcomes):
            if failure is None:
                result.written.append(rel)
            else:
                result.failures.append(failure)
        return result
