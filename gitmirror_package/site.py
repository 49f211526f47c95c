"""
The build pipeline: resolve the theme and open the repository (any failure
there is fatal and nothing is written), render every page in memory, then hand
everything to the Writer.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Tuple

from .config import SiteConfig
from .errors import ConfigError, NotFound, PageRenderError
from .highlight import Highlighter
from .pages import PageRenderer, ProjectInfo, RenderedPage, site_stylesheet
from .paths import PageKind, PathMirror, page_count
from .repository import EntryKind, Reference, RepositoryModel
from .themes import ThemeResolver
from .writer import IOFailure, Writer

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    written: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    failures: List[IOFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        if self.failures:
            lines = [f"build failed: {len(self.failures)} artifact(s) could not be written"]
            lines += [f"  {f.path}: {f.reason}" for f in self.failures]
        else:
            lines = [f"site built with {len(self.warnings)} warning(s): {len(self.written)} files written"]
        lines += [f"  warning: {w}" for w in self.warnings]
        return "\n".join(lines)


@dataclass(frozen=True)
class PageTask:
    path: str
    kind: PageKind
    render: Callable[[], RenderedPage]


def pick_default_ref(repo: RepositoryModel, name: str | None) -> Reference | None:
    if name:
        try:
            return repo.find_reference(name)
        except NotFound as e:
            raise ConfigError(f"Default ref '{name}' does not exist") from e
    return repo.default_branch()


def plan_pages(renderer: PageRenderer, repo: RepositoryModel, default: Reference | None,
               page_size: int) -> List[PageTask]:
    """Every page of the site, walking each ref's trees up front."""
    mirror = renderer.mirror
    tasks = [
        PageTask(mirror.home(), PageKind.HOME, lambda: renderer.home(default)),
        PageTask(mirror.tags(), PageKind.TAGS, renderer.tags),
    ]
    for ref in repo.list_references():
        for dir_path, entries in repo.walk(ref.target):
            tasks.append(PageTask(
                mirror.tree(ref.key, dir_path), PageKind.TREE,
                lambda ref=ref, dir_path=dir_path, entries=entries: renderer.tree(ref, dir_path, entries),
            ))
            for entry in entries:
                if entry.kind is EntryKind.DIRECTORY:
                    continue
                path = f"{dir_path}/{entry.name}" if dir_path else entry.name
                tasks.append(PageTask(
                    mirror.blob(ref.key, path), PageKind.BLOB,
                    lambda ref=ref, path=path, entry=entry: renderer.blob(ref, path, entry),
                ))
        for page in range(1, page_count(repo.commit_count(ref), page_size) + 1):
            tasks.append(PageTask(
                mirror.commits(ref.key, page), PageKind.COMMITS,
                lambda ref=ref, page=page: renderer.commit_log(ref, page),
            ))
        logger.info(f"Planned pages for {ref.kind} {ref.name}")

    planned: List[PageTask] = []
    seen = set()
    for task in tasks:
        if task.path in seen:
            logger.warning(f"Skipping {task.kind.value} page: {task.path} is already planned")
            renderer.warnings.append(f"{task.path}: another page maps to the same output path")
            continue
        seen.add(task.path)
        planned.append(task)
    return planned


def render_task(renderer: PageRenderer, task: PageTask) -> Tuple[RenderedPage, str | None]:
    try:
        return task.render(), None
    except (PageRenderError, NotFound, UnicodeError) as e:
        logger.warning(f"Substituting error page for {task.path}: {e}")
        return renderer.error_page(task.path, task.kind, str(e)), f"{task.path}: {e}"


def render_all(renderer: PageRenderer, tasks: List[PageTask], jobs: int) -> List[Tuple[RenderedPage, str | None]]:
    if jobs > 1:
        with ThreadPoolExecutor(max_workers=jobs) as pool:
            return list(pool.map(lambda t: render_task(renderer, t), tasks))
    return [render_task(renderer, t) for t in tasks]


def build_site(config: SiteConfig) -> BuildReport:
    config.validate()
    theme = ThemeResolver(config.theme).resolve()
    repo = RepositoryModel(config.repo)
    refs = repo.list_references()
    default = pick_default_ref(repo, config.default_ref)
    logger.info(f"Found {len(refs)} refs; default ref is {default.name if default else '(none)'}")

    mirror = PathMirror(default.key if default else None, theme.slug)
    renderer = PageRenderer(
        repo=repo,
        highlighter=Highlighter(theme),
        mirror=mirror,
        project=ProjectInfo(name=config.project_name(), owner=config.owner),
        page_size=config.page_size,
        max_blob_bytes=config.max_blob_bytes,
    )

    tasks = plan_pages(renderer, repo, default, config.page_size)
    logger.info(f"Rendering {len(tasks)} pages")
    rendered = render_all(renderer, tasks, config.jobs)

    artifacts = [(mirror.stylesheet(), site_stylesheet(theme.css).encode("utf-8"))]
    artifacts += sorted((page.path, page.content) for page, _ in rendered)
    warnings = [w for _, w in rendered if w] + renderer.warnings

    logger.info(f"Writing {len(artifacts)} files to {config.output}")
    result = Writer(config.output, config.jobs).write_all(artifacts)
    return BuildReport(written=sorted(result.written), warnings=warnings, failures=result.failures)
