import base64

import pytest

from .highlight import Highlighter
from .pages import PageRenderer, ProjectInfo, bytes_human, format_timestamp, sort_entries
from .paths import PathMirror
from .repository import EntryKind, RepositoryModel, TreeEntry
from .themes import load_builtin_theme

PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="
)


@pytest.fixture
def media_repo(repo_builder):
    repo_builder.commit("Add files", {
        "docs/guide.md": "# Guide\n\nSee `run()`.\n",
        "docs/logo.png": PNG,
        "docs/nested/deep.txt": "deep\n",
    })
    (repo_builder.path / "latest").symlink_to("docs/guide.md")
    repo_builder.commit("Add link")
    return repo_builder


def make_renderer(path, page_size=35, max_blob_bytes=1024 * 1024):
    repo = RepositoryModel(path)
    theme = load_builtin_theme("Catppuccin-Latte")
    return repo, PageRenderer(
        repo=repo,
        highlighter=Highlighter(theme),
        mirror=PathMirror("main", theme.slug),
        project=ProjectInfo(name="media"),
        page_size=page_size,
        max_blob_bytes=max_blob_bytes,
    )


def entry_at(repo, ref, path):
    parent, _, name = path.rpartition("/")
    return next(e for e in repo.tree(ref.target, parent) if e.name == name)


def test_markdown_blob_shows_rendered_and_source(media_repo):
    repo, renderer = make_renderer(media_repo.path)
    ref = repo.find_reference("main")

    page = renderer.blob(ref, "docs/guide.md", entry_at(repo, ref, "docs/guide.md")).content.decode()

    assert '<div class="markdown-content"><h1 id="guide">Guide</h1>' in page
    assert '<span class="line" id="L1"><a class="ln" href="#L1">1</a>' in page
    assert page.count('class="line"') == 3


def test_image_blob_is_inlined(media_repo):
    repo, renderer = make_renderer(media_repo.path)
    ref = repo.find_reference("main")

    page = renderer.blob(ref, "docs/logo.png", entry_at(repo, ref, "docs/logo.png")).content.decode()

    assert f'src="data:image/png;base64,{base64.b64encode(PNG).decode()}"' in page


def test_symlink_blob_shows_target(media_repo):
    repo, renderer = make_renderer(media_repo.path)
    ref = repo.find_reference("main")

    page = renderer.blob(ref, "latest", entry_at(repo, ref, "latest")).content.decode()

    assert "Symbolic link to <code>docs/guide.md</code>" in page


def test_nested_tree_has_breadcrumbs_and_parent_link(media_repo):
    repo, renderer = make_renderer(media_repo.path)
    ref = repo.find_reference("main")

    page = renderer.tree(ref, "docs/nested")

    assert page.path == "tree/main/docs/nested.html"
    html = page.content.decode()
    assert '<a href="../../../index.html">media</a>' in html
    assert '<a href="../docs.html">docs</a>' in html
    assert "<strong>nested</strong>" in html
    assert '<a href="../docs.html">..</a>' in html
    assert 'href="../../../blob/main/docs/nested/deep.txt.html"' in html


def test_directories_are_listed_first(media_repo):
    repo, renderer = make_renderer(media_repo.path)
    ref = repo.find_reference("main")

    html = renderer.tree(ref, "docs").content.decode()

    assert html.index("nested/") < html.index("guide.md") < html.index("logo.png")


def test_merge_commits_get_a_badge(repo_builder):
    repo_builder.commit("A", {"a.txt": "a\n"})
    repo_builder.branch("side")
    repo_builder.checkout("side")
    repo_builder.commit("B", {"b.txt": "b\n"})
    repo_builder.checkout("main")
    repo_builder.clock += 60
    repo_builder.git("merge", "--no-ff", "--no-edit", "-q", "-m", "Merge side", "side")
    repo, renderer = make_renderer(repo_builder.path)

    html = renderer.commit_log(repo.find_reference("main"), 1).content.decode()

    assert html.count('<span class="badge">merge</span>') == 1


def test_helpers():
    assert bytes_human(512) == "512 B"
    assert bytes_human(2048) == "2.0 KiB"
    assert format_timestamp(0) == "1970-01-01 00:00 UTC"
    entries = [
        TreeEntry("b.txt", EntryKind.FILE, "1", "100644", 1),
        TreeEntry("Zeta", EntryKind.DIRECTORY, "2", "040000"),
        TreeEntry("a.txt", EntryKind.FILE, "3", "100644", 1),
    ]
    assert [e.name for e in sort_entries(entries)] == ["Zeta", "a.txt", "b.txt"]


def test_markdown_images_and_links_resolve_inside_the_ref(repo_builder):
    repo_builder.commit("Docs", {
        "docs/logo.png": PNG,
        "docs/index.md": "![logo](logo.png) ![gone](missing.png) [deep](nested/) [top](../)\n",
        "docs/nested/deep.txt": "deep\n",
    })
    repo, renderer = make_renderer(repo_builder.path)
    ref = repo.find_reference("main")

    page = renderer.blob(ref, "docs/index.md", entry_at(repo, ref, "docs/index.md")).content.decode()

    assert f'src="data:image/png;base64,{base64.b64encode(PNG).decode()}"' in page
    assert 'src="missing.png"' in page
    assert '<a href="../../../tree/main/docs/nested.html">deep</a>' in page
    assert '<a href="../../../index.html">top</a>' in page


def test_file_rows_show_the_commit_that_last_changed_them(repo_builder):
    repo_builder.commit("Add both", {"old.txt": "old\n", "new.txt": "v1\n"}, when=1_700_000_000)
    repo_builder.commit("Update new", {"new.txt": "v2\n"}, when=1_700_086_400)
    repo, renderer = make_renderer(repo_builder.path)

    html = renderer.tree(repo.find_reference("main")).content.decode()

    old_row = html[html.index("old.txt"):].split("</tr>", 1)[0]
    new_row = html[html.index("new.txt"):].split("</tr>", 1)[0]
    assert '<td class="last-commit">Add both</td><td class="date">2023-11-14 22:13 UTC</td>' in old_row
    assert '<td class="last-commit">Update new</td><td class="date">2023-11-15 22:13 UTC</td>' in new_row


def test_home_listing_has_last_commit_columns(media_repo):
    repo, renderer = make_renderer(media_repo.path)

    html = renderer.home(repo.find_reference("main")).content.decode()

    docs_row = html[html.index("docs/</a>"):].split("</tr>", 1)[0]
    assert '<td class="last-commit">Add files</td>' in docs_row
    latest_row = html[html.index("latest →</a>"):].split("</tr>", 1)[0]
    assert '<td class="last-commit">Add link</td>' in latest_row
