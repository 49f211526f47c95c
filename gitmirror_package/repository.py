"""
Read-only snapshot of a git repository: references, commits, trees and blobs.

Everything is read through the `git` CLI. Objects are cached by their id, so a
subtree or blob shared between many commits is only read once per run.
"""

from __future__ import annotations

import logging
import pathlib
import subprocess
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Sequence, Tuple

from .errors import CorruptObject, NotFound, UnreadableRepository

logger = logging.getLogger(__name__)

# field sep 0x1f, message last so it may contain anything but NUL
COMMIT_FORMAT = "%H%x1f%P%x1f%T%x1f%an%x1f%ae%x1f%at%x1f%ct%x1f%B"


def run(cmd: List[str], cwd: str | None = None, check: bool = True) -> subprocess.CompletedProcess:
    return subprocess.run(
        cmd, cwd=cwd, check=check, text=True, encoding="utf-8", errors="replace", capture_output=True
    )


def run_bytes(cmd: List[str], cwd: str | None = None) -> bytes:
    return subprocess.run(cmd, cwd=cwd, check=True, capture_output=True).stdout


def looks_binary(data: bytes) -> bool:
    if b"\x00" in data:
        return True
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return True
    return False


class EntryKind(str, Enum):
    DIRECTORY = "directory"
    FILE = "file"
    SYMLINK = "symlink"


@dataclass(frozen=True)
class Reference:
    name: str        # short name, e.g. "main" or "v1.0"
    full_name: str   # e.g. "refs/heads/main"
    kind: str        # "branch" | "tag"
    target: str      # commit id the ref peels to
    key: str         # unique name used for output paths

    @property
    def is_tag(self) -> bool:
        return self.kind == "tag"


@dataclass(frozen=True)
class Commit:
    oid: str
    parents: Tuple[str, ...]
    tree: str
    author: str
    email: str
    author_time: int
    timestamp: int   # committer time, used for ordering
    message: str

    @property
    def short_oid(self) -> str:
        return self.oid[:7]

    @property
    def subject(self) -> str:
        return self.message.split("\n", 1)[0].strip()

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


@dataclass(frozen=True)
class TreeEntry:
    name: str
    kind: EntryKind
    oid: str
    mode: str
    size: int | None = None  # None for directories


@dataclass(frozen=True)
class Blob:
    oid: str
    size: int
    data: bytes
    text: str | None  # None when the content is classified as binary

    @property
    def is_binary(self) -> bool:
        return self.text is None


def parse_commit_record(record: str) -> Commit:
    fields = record.split("\x1f", 7)
    if len(fields) != 8:
        raise ValueError(f"expected 8 fields, got {len(fields)}")
    oid, parents, tree, author, email, author_time, commit_time, message = fields
    return Commit(
        oid=oid.strip(),
        parents=tuple(p for p in parents.split() if p),
        tree=tree,
        author=author,
        email=email,
        author_time=int(author_time),
        timestamp=int(commit_time),
        message=message.rstrip("\n"),
    )


def history_order(commits: Sequence[Commit]) -> List[Commit]:
    """Newest first; equal timestamps ordered by id so the order is total."""
    return sorted(commits, key=lambda c: (-c.timestamp, c.oid))


class RepositoryModel:
    def __init__(self, path: str | pathlib.Path):
        self.path = pathlib.Path(path)
        self._cwd = str(self.path)
        self._lock = threading.Lock()
        self._commits: Dict[str, Commit] = {}
        self._trees: Dict[str, Tuple[TreeEntry, ...]] = {}
        self._histories: Dict[str, Tuple[str, ...]] = {}
        self._changes: Dict[Tuple[str, str], Dict[str, Commit]] = {}
        self._refs: List[Reference] | None = None
        self._check_repository()

    def _check_repository(self) -> None:
        if not self.path.is_dir():
            raise UnreadableRepository(f"Not a directory: {self.path}")
        try:
            bare = self._git("rev-parse", "--is-bare-repository").stdout.strip() == "true"
            if bare:
                top = self._git("rev-parse", "--absolute-git-dir").stdout.strip()
            else:
                top = self._git("rev-parse", "--show-toplevel").stdout.strip()
        except FileNotFoundError as e:
            raise UnreadableRepository("git executable not found in PATH") from e
        except subprocess.CalledProcessError as e:
            raise UnreadableRepository(
                f"Not a git repository: {self.path} ({e.stderr.strip()})"
            ) from e
        if pathlib.Path(top).resolve() != self.path.resolve():
            raise UnreadableRepository(f"Not a repository root: {self.path} (root is {top})")
        logger.debug(f"Opened repository {self.path} (bare={bare})")

    def _git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        return run(["git", *args], cwd=self._cwd, check=check)

    def _read_object(self, oid: str, *args: str) -> subprocess.CompletedProcess:
        try:
            return self._git(*args)
        except subprocess.CalledProcessError as e:
            raise CorruptObject(oid, e.stderr.strip() or f"git {args[0]} failed") from e

    def _read_bytes(self, oid: str, *args: str) -> bytes:
        try:
            return run_bytes(["git", *args], cwd=self._cwd)
        except subprocess.CalledProcessError as e:
            reason = e.stderr.decode("utf-8", "replace").strip() if e.stderr else ""
            raise CorruptObject(oid, reason or f"git {args[0]} failed") from e

    # -- references --------------------------------------------------------

    def list_references(self) -> List[Reference]:
        """Branches then tags, each alphabetical. Refs not peeling to a commit are skipped."""
        if self._refs is not None:
            return list(self._refs)

        fmt = "%(refname)%00%(objectname)%00%(objecttype)%00%(*objectname)%00%(*objecttype)"
        out = self._git("for-each-ref", f"--format={fmt}", "refs/heads", "refs/tags").stdout
        branches: List[Tuple[str, str, str]] = []
        tags: List[Tuple[str, str, str]] = []
        for line in out.splitlines():
            if not line:
                continue
            full_name, oid, otype, peeled, peeled_type = line.split("\x00")
            if otype == "tag":
                oid, otype = peeled, peeled_type
                if otype == "tag":
                    oid, otype = self._peel_to_commit(full_name), "commit"
            if otype != "commit":
                logger.warning(f"Skipping {full_name}: points at a {otype}, not a commit")
                continue
            if full_name.startswith("refs/heads/"):
                branches.append((full_name[len("refs/heads/"):], full_name, oid))
            else:
                tags.append((full_name[len("refs/tags/"):], full_name, oid))

        refs: List[Reference] = []
        taken: set[str] = set()
        for kind, group in (("branch", branches), ("tag", tags)):
            for name, full_name, oid in sorted(group):
                key = name
                if key in taken:
                    # a tag sharing a branch's name; "~" cannot occur in a ref name
                    key = full_name
                    n = 1
                    while key in taken:
                        key = f"{full_name}~{n}"
                        n += 1
                taken.add(key)
                refs.append(Reference(name=name, full_name=full_name, kind=kind, target=oid, key=key))

        with self._lock:
            self._refs = refs
        return list(refs)

    def _peel_to_commit(self, full_name: str) -> str:
        return self._read_object(full_name, "rev-parse", "--verify", f"{full_name}^{{commit}}").stdout.strip()

    def branches(self) -> List[Reference]:
        return [r for r in self.list_references() if not r.is_tag]

    def tags(self) -> List[Reference]:
        return [r for r in self.list_references() if r.is_tag]

    def find_reference(self, name: str) -> Reference:
        refs = self.list_references()
        for ref in refs:
            if ref.key == name or ref.full_name == name:
                return ref
        for ref in refs:
            if ref.name == name:
                return ref
        raise NotFound(f"Reference not found: {name}")

    def default_branch(self) -> Reference | None:
        """The branch HEAD points at, else the first branch, else the first ref."""
        refs = self.list_references()
        if not refs:
            return None
        head = self._git("symbolic-ref", "-q", "HEAD", check=False).stdout.strip()
        for ref in refs:
            if ref.full_name == head:
                return ref
        branches = [r for r in refs if not r.is_tag]
        return branches[0] if branches else refs[0]

    # -- commits -----------------------------------------------------------

    def commit(self, oid: str) -> Commit:
        cached = self._commits.get(oid)
        if cached is not None:
            return cached
        out = self._read_object(oid, "log", "-1", "-z", "--no-show-signature", f"--format={COMMIT_FORMAT}", oid, "--").stdout
        try:
            commit = parse_commit_record(out.rstrip("\x00"))
        except ValueError as e:
            raise CorruptObject(oid, f"cannot parse commit: {e}") from e
        with self._lock:
            self._commits.setdefault(commit.oid, commit)
        return commit

    def _first_parent_line(self, tip: str) -> Tuple[str, ...]:
        cached = self._histories.get(tip)
        if cached is not None:
            return cached
        out = self._read_object(
            tip, "log", "-z", "--no-show-signature", "--first-parent", f"--format={COMMIT_FORMAT}", tip, "--"
        ).stdout
        commits: List[Commit] = []
        for record in out.split("\x00"):
            if not record.strip():
                continue
            try:
                commits.append(parse_commit_record(record))
            except ValueError as e:
                raise CorruptObject(tip, f"cannot parse history: {e}") from e
        ordered = tuple(c.oid for c in history_order(commits))
        with self._lock:
            for c in commits:
                self._commits.setdefault(c.oid, c)
            self._histories[tip] = ordered
        logger.debug(f"History of {tip[:8]}: {len(ordered)} commits")
        return ordered

    def _resolve(self, ref: Reference | str) -> Reference:
        return ref if isinstance(ref, Reference) else self.find_reference(ref)

    def history(self, ref: Reference | str, offset: int = 0, limit: int | None = None) -> List[Commit]:
        """
        Up to `limit` commits of the ref's first-parent line after skipping
        `offset`, newest first. Calling again with the same arguments returns
        the same commits.
        """
        if offset < 0 or (limit is not None and limit < 0):
            raise ValueError("offset and limit must be non-negative")
        line = self._first_parent_line(self._resolve(ref).target)
        end = len(line) if limit is None else offset + limit
        return [self._commits[oid] for oid in line[offset:end]]

    def commit_count(self, ref: Reference | str) -> int:
        return len(self._first_parent_line(self._resolve(ref).target))

    # -- trees and blobs ---------------------------------------------------

    def _tree_entries(self, tree_oid: str) -> Tuple[TreeEntry, ...]:
        cached = self._trees.get(tree_oid)
        if cached is not None:
            return cached
        out = self._read_bytes(tree_oid, "ls-tree", "-z", "-l", tree_oid)
        entries: List[TreeEntry] = []
        for record in out.split(b"\x00"):
            if not record:
                continue
            try:
                meta, raw_name = record.split(b"\t", 1)
                mode, otype, oid, size = meta.decode("ascii").split()
                # lossless: names that are not UTF-8 stay distinct
                name = raw_name.decode("utf-8", "surrogateescape")
            except ValueError as e:
                raise CorruptObject(tree_oid, f"cannot parse tree entry {record!r}") from e
            if otype == "tree":
                kind = EntryKind.DIRECTORY
            elif otype == "blob" and mode == "120000":
                kind = EntryKind.SYMLINK
            elif otype == "blob":
                kind = EntryKind.FILE
            else:
                logger.debug(f"Skipping {otype} entry {name} in tree {tree_oid[:8]}")
                continue
            entries.append(TreeEntry(
                name=name,
                kind=kind,
                oid=oid,
                mode=mode,
                size=None if size == "-" else int(size),
            ))
        result = tuple(entries)
        with self._lock:
            self._trees[tree_oid] = result
        return result

    def _directory_oid(self, commit_id: str, path: str) -> str | None:
        oid = self.commit(commit_id).tree
        for segment in [s for s in path.split("/") if s]:
            match = next((e for e in self._tree_entries(oid) if e.name == segment), None)
            if match is None or match.kind is not EntryKind.DIRECTORY:
                return None
            oid = match.oid
        return oid

    def tree(self, commit_id: str, path: str = "") -> List[TreeEntry]:
        """Entries of the directory at `path` in the commit's root tree."""
        oid = self._directory_oid(commit_id, path)
        if oid is None:
            raise NotFound(f"No directory '{path}' in commit {commit_id[:8]}")
        return list(self._tree_entries(oid))

    def _entry_map(self, tree_oid: str | None) -> Dict[str, Tuple[EntryKind, str]]:
        if tree_oid is None:
            return {}
        return {e.name: (e.kind, e.oid) for e in self._tree_entries(tree_oid)}

    def last_changes(self, ref: Reference | str, path: str = "") -> Dict[str, Commit]:
        """
        For each entry of the directory at `path`, the newest commit on the
        ref's first-parent line that added or changed it. A commit counts as
        changing an entry when the entry differs from its first parent's.
        """
        target = self._resolve(ref).target
        key = (target, path)
        cached = self._changes.get(key)
        if cached is not None:
            return dict(cached)

        top = self._directory_oid(target, path)
        if top is None:
            raise NotFound(f"No directory '{path}' in commit {target[:8]}")
        pending = set(self._entry_map(top))
        found: Dict[str, Commit] = {}
        oid: str | None = target
        current_dir = top
        while pending and oid is not None:
            commit = self.commit(oid)
            parent = commit.parents[0] if commit.parents else None
            parent_dir = self._directory_oid(parent, path) if parent is not None else None
            if parent_dir != current_dir:
                mine = self._entry_map(current_dir)
                theirs = self._entry_map(parent_dir)
                for name in [n for n in pending if mine.get(n) != theirs.get(n)]:
                    found[name] = commit
                    pending.discard(name)
            oid, current_dir = parent, parent_dir

        with self._lock:
            self._changes[key] = found
        return dict(found)

    def walk(self, commit_id: str) -> Iterator[Tuple[str, List[TreeEntry]]]:
        """Yields (directory path, entries) for every directory, parents first."""
        pending = [""]
        while pending:
            path = pending.pop(0)
            entries = self.tree(commit_id, path)
            yield path, entries
            for e in entries:
                if e.kind is EntryKind.DIRECTORY:
                    pending.append(f"{path}/{e.name}" if path else e.name)

    def blob(self, blob_id: str) -> Blob:
        data = self._read_bytes(blob_id, "cat-file", "blob", blob_id)
        text = None if looks_binary(data) else data.decode("utf-8")
        return Blob(oid=blob_id, size=len(data), data=data, text=text)
