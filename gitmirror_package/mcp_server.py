#!/usr/bin/env python3
"""
MCP Server for gitmirror - builds a static HTML mirror of a local repository
"""

import asyncio
import logging
import pathlib
from typing import Any, Dict, List

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import DEFAULT_PAGE_SIZE, SiteConfig
from .errors import GitMirrorError
from .site import build_site
from .themes import DEFAULT_THEME, builtin_theme_names

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize the MCP server
server = Server("gitmirror-mcp")


@server.list_tools()
async def list_tools() -> List[Tool]:
    """List available tools."""
    return [
        Tool(
            name="build_site",
            description="Render a local git repository into a static HTML site",
            inputSchema={
                "type": "object",
                "properties": {
                    "repo_path": {
                        "type": "string",
                        "description": "Path to the local git repository"
                    },
                    "output_dir": {
                        "type": "string",
                        "description": "Directory to write the site into (default: <repo>/dist)"
                    },
                    "theme": {
                        "type": "string",
                        "description": f"Built-in theme name or theme file path (default: {DEFAULT_THEME})"
                    },
                    "page_size": {
                        "type": "integer",
                        "description": f"Commits per history page (default: {DEFAULT_PAGE_SIZE})"
                    },
                },
                "required": ["repo_path"]
            }
        ),
        Tool(
            name="list_themes",
            description="List the built-in highlighting themes",
            inputSchema={"type": "object", "properties": {}}
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
    """Call a specific tool by name."""
    if name == "list_themes":
        return [TextContent(type="text", text="\n".join(builtin_theme_names()))]

    if name == "build_site":
        if "repo_path" not in arguments:
            raise ValueError("Missing required argument: repo_path")

        repo_path = pathlib.Path(arguments["repo_path"])
        output_dir = pathlib.Path(arguments.get("output_dir") or repo_path / "dist")
        page_size = arguments.get("page_size")
        config = SiteConfig(
            repo=repo_path,
            output=output_dir,
            theme=arguments.get("theme") or DEFAULT_THEME,
            page_size=DEFAULT_PAGE_SIZE if page_size is None else int(page_size),
        )
        logger.info(f"Building site for {repo_path} into {output_dir}")

        try:
            report = await asyncio.to_thread(build_site, config)
        except GitMirrorError as e:
            logger.error(f"Error building site: {e}")
            return [TextContent(type="text", text=f"Error building site for {repo_path}: {e}")]

        logger.info(f"Build finished: {len(report.written)} files, {len(report.failures)} failures")
        return [TextContent(type="text", text=f"{report.summary()}\nOutput: {output_dir.resolve()}")]

    raise ValueError(f"Unknown tool: {name}")


async def serve():
    """Run the MCP server over stdio."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main():
    """Console entry point."""
    asyncio.run(serve())


if __name__ == "__main__":
    main()
