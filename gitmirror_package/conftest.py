import os
import pathlib
import subprocess

import pytest

BASE_TIME = 1_700_000_000


class RepoBuilder:
    """Builds a throwaway repository with fixed identities and dates."""

    def __init__(self, path: pathlib.Path):
        self.path = path
        self.clock = BASE_TIME
        path.mkdir(parents=True, exist_ok=True)
        self.git("init", "-q")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")

    def env(self, when: int) -> dict:
        env = dict(os.environ)
        env.update({
            "GIT_AUTHOR_NAME": "Ada Lovelace",
            "GIT_AUTHOR_EMAIL": "ada@example.com",
            "GIT_COMMITTER_NAME": "Ada Lovelace",
            "GIT_COMMITTER_EMAIL": "ada@example.com",
            "GIT_AUTHOR_DATE": f"{when} +0000",
            "GIT_COMMITTER_DATE": f"{when} +0000",
            "GIT_CONFIG_NOSYSTEM": "1",
            "GIT_CONFIG_GLOBAL": os.devnull,
        })
        return env

    def git(self, *args: str, when: int | None = None) -> str:
        cp = subprocess.run(
            ["git", *args], cwd=self.path, check=True, text=True, capture_output=True,
            env=self.env(when if when is not None else self.clock),
        )
        return cp.stdout.strip()

    def write(self, rel: str, content) -> None:
        target = self.path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_bytes(content.encode("utf-8"))

    def commit(self, message: str, files: dict | None = None, when: int | None = None) -> str:
        for rel, content in (files or {}).items():
            self.write(rel, content)
        if when is None:
            self.clock += 60
            when = self.clock
        self.git("add", "-A", when=when)
        self.git("commit", "-q", "--allow-empty", "--no-gpg-sign", "-m", message, when=when)
        return self.git("rev-parse", "HEAD")

    def branch(self, name: str, start: str = "HEAD") -> None:
        self.git("branch", name, start)

    def checkout(self, name: str) -> None:
        self.git("checkout", "-q", name)

    def tag(self, name: str, target: str = "HEAD", message: str | None = None) -> None:
        if message is None:
            self.git("tag", name, target)
        else:
            self.git("tag", "-a", name, target, "-m", message)


@pytest.fixture
def repo_builder(tmp_path):
    return RepoBuilder(tmp_path / "repo")


@pytest.fixture
def single_commit_repo(repo_builder):
    repo_builder.commit("Initial commit", {"main.rs": "fn main() {}\n"})
    return repo_builder


@pytest.fixture
def sample_repo(repo_builder):
    """A few commits, a nested tree, a binary file, a branch and two tags."""
    b = repo_builder
    b.commit("Add readme", {"README.md": "# Sample\n\nHello *world*.\n"})
    b.commit("Add sources", {
        "src/app.py": "def main():\n    return 42\n",
        "src/util/strings.py": "NAME = 'sample'\n",
        "data.bin": b"\x00\x01\x02binary",
        "notes.unknownext": "plain words here\n",
    })
    b.tag("v0.1")
    b.branch("feature/login")
    b.commit("Tweak app", {"src/app.py": "def main():\n    return 43\n"})
    b.tag("v0.2", message="Second release")
    return b
