#!/usr/bin/env python3
"""
Mirror a local git repository into a static HTML site.

Usage
    gitmirror path/to/repo -o dist
    gitmirror . --theme Catppuccin-Mocha --page-size 50 --open

Output
    index.html, assets/<theme>.css, tree/<ref>/..., blob/<ref>/...,
    commits/<ref>/page-<n>.html, tags/index.html

Notes
- Requires a working `git` in PATH.
- --theme takes a built-in theme name (case-sensitive) or a path to a
  .tmTheme / .json TextMate theme.
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import shutil
import sys
import webbrowser
from typing import List

from .config import DEFAULT_PAGE_SIZE, DEFAULT_THEME, MAX_DEFAULT_BYTES, SiteConfig
from .errors import GitMirrorError
from .site import build_site
from .themes import builtin_theme_names

EXIT_OK = 0
EXIT_WRITE_FAILURES = 1
EXIT_FATAL = 2


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Mirror a local git repository into a static HTML site")
    ap.add_argument("repo", nargs="?", default=".", help="Repository path (default: current directory)")
    ap.add_argument("-o", "--output", default="dist", help="Output directory (default: dist)")
    ap.add_argument("--name", help="Project name (default: repository directory name)")
    ap.add_argument("--owner", help="Project owner shown next to the name")
    ap.add_argument("--theme", default=DEFAULT_THEME, help=f"Highlighting theme name or theme file (default: {DEFAULT_THEME})")
    ap.add_argument("--list-themes", action="store_true", help="Print the built-in theme names and exit")
    ap.add_argument("--page-size", type=int, default=DEFAULT_PAGE_SIZE, help=f"Commits per history page (default: {DEFAULT_PAGE_SIZE})")
    ap.add_argument("--ref", help="Ref shown on the home page (default: the branch HEAD points at)")
    ap.add_argument("--max-bytes", type=int, default=MAX_DEFAULT_BYTES, help="Largest file shown inline (bytes); bigger files get a placeholder page")
    ap.add_argument("-j", "--jobs", type=int, default=1, help="Worker threads for rendering and writing")
    ap.add_argument("--clean", action="store_true", help="Remove the output directory before building")
    ap.add_argument("--open", action="store_true", help="Open index.html in a browser when done")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap.parse_args(argv)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.list_themes:
        print("\n".join(builtin_theme_names()))
        return EXIT_OK

    config = SiteConfig(
        repo=pathlib.Path(args.repo),
        output=pathlib.Path(args.output),
        name=args.name,
        owner=args.owner,
        theme=args.theme,
        page_size=args.page_size,
        default_ref=args.ref,
        max_blob_bytes=args.max_bytes,
        jobs=args.jobs,
    )

    if args.clean and config.output.exists():
        print(f"🗑️  Removing {config.output}", file=sys.stderr)
        shutil.rmtree(config.output)

    print(f"🔨 Building site for {config.repo.resolve()}...", file=sys.stderr)
    try:
        report = build_site(config)
    except GitMirrorError as e:
        print(f"✗ {e}", file=sys.stderr)
        return EXIT_FATAL

    print(report.summary(), file=sys.stderr)
    if not report.ok:
        return EXIT_WRITE_FAILURES

    index = config.output / "index.html"
    print(f"✓ Wrote {len(report.written)} files to {config.output.resolve()}", file=sys.stderr)
    if args.open:
        print(f"🌐 Opening {index} in browser...", file=sys.stderr)
        webbrowser.open(f"file://{index.resolve()}")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
