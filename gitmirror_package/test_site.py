import os
import re

import pytest

from .config import SiteConfig
from .errors import ConfigError, PageRenderError, ThemeNotFound, UnreadableRepository
from .pages import PageRenderer
from .repository import RepositoryModel
from .site import build_site


def site_files(root):
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())


def commit_ids(page: str):
    return re.findall(r'<li id="c-([0-9a-f]{40})">', page)


def assert_links_resolve(out):
    for page in out.rglob("*.html"):
        for href in re.findall(r'(?:href|src)="([^"#]+)"', page.read_text()):
            if href.startswith("data:"):
                continue
            target = (page.parent / href.replace("%25", "%")).resolve()
            assert target.is_file(), f"{page.relative_to(out)} links to missing {href}"


def test_single_commit_site(single_commit_repo, tmp_path):
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=single_commit_repo.path, output=out))

    assert report.ok
    assert site_files(out) == [
        "assets/Catppuccin-Latte.css",
        "blob/main/main.rs.html",
        "commits/main/page-1.html",
        "index.html",
        "tags/index.html",
        "tree/main/index.html",
    ]
    assert report.written == site_files(out)
    blob = (out / "blob/main/main.rs.html").read_text()
    assert '<span class="tok-keyword">fn</span>' in blob
    assert 'href="../../assets/Catppuccin-Latte.css"' in blob
    assert "No tags" in (out / "tags/index.html").read_text()
    assert "site built with 0 warning(s)" in report.summary()
    head = single_commit_repo.git("rev-parse", "HEAD")
    assert commit_ids((out / "commits/main/page-1.html").read_text()) == [head]
    listing = (out / "tree/main/index.html").read_text()
    assert 'href="../../blob/main/main.rs.html">main.rs</a>' in listing
    assert '<td class="last-commit">Initial commit</td>' in listing


def test_commit_log_pagination(repo_builder, tmp_path):
    for i in range(25):
        repo_builder.commit(f"Commit number {i}", {"counter.txt": f"{i}\n"})
    out = tmp_path / "site"

    build_site(SiteConfig(repo=repo_builder.path, output=out, page_size=10))

    pages = [(out / f"commits/main/page-{n}.html").read_text() for n in (1, 2, 3)]
    assert not (out / "commits/main/page-4.html").exists()
    assert [len(commit_ids(p)) for p in pages] == [10, 10, 5]

    assert 'class="newer"' not in pages[0]
    assert 'class="older"' in pages[0]
    assert 'class="newer"' in pages[1] and 'class="older"' in pages[1]
    assert 'class="older"' not in pages[2]
    assert 'href="page-2.html"' in pages[2]
    assert "Page 3 of 3" in pages[2]

    # every first-parent commit appears exactly once, newest first
    history = [c.oid for c in RepositoryModel(repo_builder.path).history("main")]
    assert [oid for p in pages for oid in commit_ids(p)] == history


def test_sample_repository_site(sample_repo, tmp_path):
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=sample_repo.path, output=out, owner="ada"))

    assert report.ok
    files = set(site_files(out))
    for ref in ("main", "feature%2Flogin", "v0.1", "v0.2"):
        assert f"tree/{ref}/index.html" in files
        assert f"commits/{ref}/page-1.html" in files
    assert "tree/main/src/util.html" in files
    assert "blob/main/src/util/strings.py.html" in files
    assert "blob/feature%2Flogin/src/app.py.html" in files
    assert "blob/v0.1/data.bin.html" in files

    home = (out / "index.html").read_text()
    assert "<em>world</em>" in home
    assert 'href="tree/feature%252Flogin/index.html"' in home
    assert "ada / " in home
    assert "Binary file not shown" in (out / "blob/main/data.bin.html").read_text()
    assert "<h1" in (out / "blob/main/README.md.html").read_text()

    tags = (out / "tags/index.html").read_text()
    assert tags.index("v0.1") < tags.index("v0.2")


def test_links_resolve_to_written_files(sample_repo, tmp_path):
    out = tmp_path / "site"
    build_site(SiteConfig(repo=sample_repo.path, output=out))

    assert_links_resolve(out)


def test_builds_are_byte_identical(sample_repo, tmp_path):
    first, second = tmp_path / "one", tmp_path / "two"

    build_site(SiteConfig(repo=sample_repo.path, output=first, name="sample"))
    build_site(SiteConfig(repo=sample_repo.path, output=second, name="sample", jobs=4))

    assert site_files(first) == site_files(second)
    for rel in site_files(first):
        assert (first / rel).read_bytes() == (second / rel).read_bytes(), rel


def test_unknown_theme_aborts_before_writing(single_commit_repo, tmp_path):
    out = tmp_path / "site"

    with pytest.raises(ThemeNotFound):
        build_site(SiteConfig(repo=single_commit_repo.path, output=out, theme="NoSuchTheme"))

    assert not out.exists()


def test_unreadable_repository_aborts_before_writing(tmp_path):
    out = tmp_path / "site"
    (tmp_path / "plain").mkdir()

    with pytest.raises(UnreadableRepository):
        build_site(SiteConfig(repo=tmp_path / "plain", output=out))

    assert not out.exists()


def test_unknown_default_ref(single_commit_repo, tmp_path):
    with pytest.raises(ConfigError):
        build_site(SiteConfig(repo=single_commit_repo.path, output=tmp_path / "site", default_ref="nope"))


def test_failing_page_is_replaced_with_error_page(sample_repo, tmp_path, monkeypatch):
    original = PageRenderer.blob

    def flaky_blob(self, ref, path, entry):
        if path == "src/app.py":
            raise PageRenderError(self.mirror.blob(ref.key, path), "boom")
        return original(self, ref, path, entry)

    monkeypatch.setattr(PageRenderer, "blob", flaky_blob)
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=sample_repo.path, output=out))

    assert report.ok
    assert any("blob/main/src/app.py.html" in w for w in report.warnings)
    assert "could not be rendered" in (out / "blob/main/src/app.py.html").read_text()
    assert (out / "index.html").exists()


def test_large_files_get_a_placeholder(sample_repo, tmp_path):
    out = tmp_path / "site"

    build_site(SiteConfig(repo=sample_repo.path, output=out, max_blob_bytes=10))

    assert "File too large to display" in (out / "blob/main/src/app.py.html").read_text()


def test_write_failures_are_reported(single_commit_repo, tmp_path):
    out = tmp_path / "site"
    out.mkdir()
    (out / "blob").write_bytes(b"in the way")

    report = build_site(SiteConfig(repo=single_commit_repo.path, output=out))

    assert not report.ok
    assert [f.path for f in report.failures] == ["blob/main/main.rs.html"]
    assert (out / "index.html").exists()
    assert report.summary().startswith("build failed: 1 artifact(s) could not be written")


def test_empty_repository(repo_builder, tmp_path):
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=repo_builder.path, output=out))

    assert report.ok
    assert site_files(out) == ["assets/Catppuccin-Latte.css", "index.html", "tags/index.html"]
    assert "no commits yet" in (out / "index.html").read_text()


def test_tag_named_like_a_branch(sample_repo, tmp_path):
    sample_repo.tag("main", "HEAD~1")
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=sample_repo.path, output=out))

    assert report.ok
    assert (out / "tree/main/index.html").exists()
    assert (out / "tree/refs%2Ftags%2Fmain/index.html").exists()


def test_file_beside_a_directory_named_like_its_page(repo_builder, tmp_path):
    repo_builder.commit("Clashing names", {"a": "plain\n", "a.html/b": "nested\n"})
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=repo_builder.path, output=out))

    assert report.ok and not report.warnings
    files = set(site_files(out))
    assert {"blob/main/a.html", "tree/main/a.html.html", "blob/main/a%2Ehtml/b.html"} <= files
    assert "plain" in (out / "blob/main/a.html").read_text()
    assert_links_resolve(out)


def test_top_level_directory_named_index_html(repo_builder, tmp_path):
    repo_builder.commit("Nested index", {"index.html/x/y": "deep\n"})
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=repo_builder.path, output=out))

    assert report.ok and not report.warnings
    files = set(site_files(out))
    assert {
        "tree/main/index.html",
        "tree/main/index.html.html",
        "tree/main/index%2Ehtml/x.html",
        "blob/main/index%2Ehtml/x/y.html",
    } <= files
    assert_links_resolve(out)


def test_tag_named_like_a_branch_called_refs_tags(single_commit_repo, tmp_path):
    for name in ("x", "refs/tags/x"):
        single_commit_repo.branch(name)
    single_commit_repo.tag("x")
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=single_commit_repo.path, output=out))

    assert report.ok and not report.warnings
    for key in ("main", "x", "refs%2Ftags%2Fx", "refs%2Ftags%2Fx~1"):
        assert (out / f"tree/{key}/index.html").exists(), key


def test_undecodable_file_names_get_their_own_pages(repo_builder, tmp_path):
    first, second = os.fsdecode(b"f\xff.txt"), os.fsdecode(b"f\xfe.txt")
    repo_builder.commit("Latin-1 names", {first: "one\n", second: "two\n"})
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=repo_builder.path, output=out))

    assert report.ok and not report.warnings
    assert "one" in (out / "blob/main/f%FF.txt.html").read_text()
    assert "two" in (out / "blob/main/f%FE.txt.html").read_text()
    assert "f�.txt" in (out / "index.html").read_text()
    assert_links_resolve(out)


def test_readme_links_point_at_mirrored_pages(repo_builder, tmp_path):
    repo_builder.commit("Docs", {
        "README.md": "See [the app](./src/app.py), [sources](src/) and [home](https://example.com).\n",
        "src/app.py": "print('hi')\n",
        "docs/guide.md": "Back to [the app](../src/app.py#L1) or [nowhere](../../outside.md).\n",
    })
    out = tmp_path / "site"

    report = build_site(SiteConfig(repo=repo_builder.path, output=out))

    assert report.ok
    home = (out / "index.html").read_text()
    assert '<a href="blob/main/src/app.py.html">the app</a>' in home
    assert '<a href="tree/main/src.html">sources</a>' in home
    assert '<a href="https://example.com">home</a>' in home
    guide = (out / "blob/main/docs/guide.md.html").read_text()
    assert '<a href="../src/app.py.html#L1">the app</a>' in guide
    assert '<a href="../../outside.md">nowhere</a>' in guide
