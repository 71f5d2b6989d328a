"""Entry point for scala-build-mcp server."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Iterator

from .build import BuildManager
from .config import ServerConfig
from .server import create_server

BUILD_TOOL_MARKERS = ("build.sbt", "build.sc", "build.mill")


def find_project_root(root: str | Path | None = None) -> str:
    """Find Scala project root by walking up from CWD.

    Searches for project markers in this order:
    1. project.scala (scala-cli style project configuration)
    2. build.sbt/build.sc/build.mill (build tool definitions)
    3. .git (git root as fallback)

    Falls back to CWD if no marker is found.

    Args:
        root: If provided, constrains search to this directory and below.
              Search stops at this boundary.

    Returns:
        Absolute path to project root (falls back to CWD if no marker found)
    """
    current = Path.cwd().resolve()
    boundary = Path(root).resolve() if root is not None else None

    def ancestors() -> Iterator[Path]:
        """Yield current directory and ancestors up to boundary."""
        yield current
        if boundary is not None and current == boundary:
            return
        for parent in current.parents:
            yield parent
            if boundary is not None and parent == boundary:
                return

    for directory in ancestors():
        if (directory / "project.scala").is_file():
            return str(directory)

    for directory in ancestors():
        if any((directory / marker).is_file() for marker in BUILD_TOOL_MARKERS):
            return str(directory)

    for directory in ancestors():
        if (directory / ".git").exists():  # .git can be file (worktree) or dir
            return str(directory)

    return str(current)


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Scala Build MCP Server - Compile and watch Scala sources via MCP"
    )
    parser.add_argument(
        "--project",
        type=str,
        default=None,
        help="Project root path. All build inputs are constrained to this path.",
    )
    parser.add_argument(
        "--project-from-cwd",
        action="store_true",
        default=False,
        help="Auto-detect project from current working directory. "
        "Searches upward for project.scala, build.sbt/build.sc/build.mill, "
        "or .git markers. Cannot be used with --project.",
    )
    return parser.parse_args(argv)


async def main() -> None:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args()
    config = ServerConfig.from_env()

    if args.project_from_cwd:
        if args.project is not None:
            logger.error("--project-from-cwd cannot be used with --project")
            sys.exit(1)
        project_path = find_project_root()
        logger.info(f"Auto-detected project root: {project_path}")
    else:
        project_path = args.project or config.project_root or os.getcwd()

    logger.info(f"Starting Scala Build MCP Server (project: {project_path})...")

    mcp = create_server(project_path, config)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        stopped = BuildManager().stop_all()
        if stopped:
            logger.info(f"Stopped {stopped} watch sessions")
        logger.info("Server stopped")


def run() -> None:
    """Run the server."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
