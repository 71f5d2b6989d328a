"""MCP Server for Scala builds."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .build import BuildManager, BuildOptions, CodeWrapper, Inputs, Successful, constants
from .build.artifacts import CoursierResolver
from .build.bloop import BloopCompiler
from .build.options import scala_binary_version, scala_js_options, scala_native_options
from .build.pipeline import BuildServices
from .build.state import BuildError, BuildResult
from .config import ServerConfig

logger = logging.getLogger(__name__)

STATE_URI = "build://state"


def validate_path(path: str, project_path: str | None, must_exist: bool = False) -> str:
    """Validate path is within project scope.

    Args:
        path: Path to validate, relative paths are taken from the project root
        project_path: Project root, or None for no constraint
        must_exist: If True, path must exist on filesystem

    Returns:
        Absolute path

    Raises:
        ValueError: If path is invalid or outside project scope
    """
    if project_path and not os.path.isabs(path):
        path = os.path.join(project_path, path)
    abs_path = os.path.abspath(path)

    if project_path:
        root = os.path.abspath(project_path)
        try:
            common = os.path.commonpath([abs_path, root])
        except ValueError as e:
            # Different drives on Windows
            raise ValueError(f"Path outside project scope: {path}") from e
        if common != root:
            raise ValueError(f"Path outside project scope: {path}")

    if must_exist and not os.path.exists(abs_path):
        raise ValueError(f"Path does not exist: {path}")

    return abs_path


def make_options(
    config: ServerConfig,
    scala_version: str | None = None,
    platform: str = "jvm",
    code_wrapper: str = "object",
    run_jmh: bool = False,
) -> BuildOptions:
    """Build options for a tool call, on top of the server configuration.

    Raises:
        ValueError: If platform or code_wrapper is unknown
    """
    version = scala_version or config.scala_version
    binary_version = scala_binary_version(version)
    platform_options: dict[str, Any] = {}
    if platform == "js":
        platform_options["scala_js"] = scala_js_options(version, binary_version)
    elif platform == "native":
        platform_options["scala_native"] = scala_native_options(version, binary_version)
    elif platform != "jvm":
        raise ValueError(f"Unknown platform: {platform} (expected jvm, js or native)")

    return BuildOptions.create(
        version,
        code_wrapper=CodeWrapper(code_wrapper),
        java_home=config.java_home,
        run_jmh=run_jmh,
        add_jmh_dependencies=constants.JMH_VERSION if run_jmh else None,
        **platform_options,
    )


def create_server(project_path: str | None = None, config: ServerConfig | None = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        project_path: Root path of the project being built.
            All input paths are constrained to this path.
        config: Tool locations and defaults, read from the environment if omitted
    """
    config = config or ServerConfig.from_env()
    project_path = project_path or config.project_root
    mcp = FastMCP("scala-build-mcp")
    manager = BuildManager()
    manager.services = BuildServices(
        resolver=CoursierResolver(config.cs_path),
        compiler=BloopCompiler(config.bloop_path),
    )
    cwd = Path(project_path) if project_path else Path.cwd()

    async def notify_state_changed(ctx: Context) -> None:
        """Notify client that build://state resource has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl(STATE_URI))
        except Exception:
            logger.debug("Resource update notification failed", exc_info=True)

    def make_inputs(paths: list[str], resource_dirs: list[str] | None) -> Inputs:
        validated = [validate_path(p, project_path, must_exist=True) for p in paths]
        validated_resources = [
            validate_path(p, project_path, must_exist=True) for p in resource_dirs or []
        ]
        return Inputs.from_paths(validated, cwd, resource_dirs=validated_resources)

    def result_data(result: BuildResult) -> dict[str, Any]:
        data = result.to_dict()
        data["summary"] = result.to_summary()
        return data

    # ============== Build Tools ==============

    @mcp.tool()
    async def build(
        ctx: Context,
        paths: list[str],
        scala_version: str | None = None,
        platform: str = "jvm",
        code_wrapper: str = "object",
        resource_dirs: list[str] | None = None,
        run_jmh: bool = False,
    ) -> dict:
        """
        Compile Scala scripts (.sc), Scala and Java sources once.

        Scripts are wrapped into objects before compilation; stack traces of
        the compiled classes point back at the script lines.

        Args:
            paths: Source files or directories, relative to the project root
            scala_version: Scala version (defaults to the server configuration)
            platform: jvm, js or native
            code_wrapper: object or app, how scripts are wrapped
            resource_dirs: Directories added to the class path as resources
            run_jmh: Also generate and compile JMH benchmarks from the output
        """
        try:
            inputs = make_inputs(paths, resource_dirs)
            options = make_options(config, scala_version, platform, code_wrapper, run_jmh)
            result = await manager.build(inputs, options, cwd)
            await notify_state_changed(ctx)
            return {"success": result.success, "data": result_data(result)}
        except BuildError as e:
            await notify_state_changed(ctx)
            return {"success": False, **e.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def start_watch(
        ctx: Context,
        paths: list[str],
        scala_version: str | None = None,
        platform: str = "jvm",
        code_wrapper: str = "object",
        resource_dirs: list[str] | None = None,
    ) -> dict:
        """
        Build, then rebuild whenever one of the inputs changes.

        Replaces the watch session already running for the same workspace.
        Poll get_build_status or read build://state for later results.

        Args:
            paths: Source files or directories, relative to the project root
            scala_version: Scala version (defaults to the server configuration)
            platform: jvm, js or native
            code_wrapper: object or app, how scripts are wrapped
            resource_dirs: Directories added to the class path as resources
        """
        try:
            inputs = make_inputs(paths, resource_dirs)
            options = make_options(config, scala_version, platform, code_wrapper)
            await manager.start_watch(inputs, options, cwd)
            await notify_state_changed(ctx)
            last = manager.get_last_result(inputs.workspace)
            return {
                "success": True,
                "data": {
                    "workspace": str(inputs.workspace),
                    "watching": [str(e.path) for e in inputs.elements],
                    "initialBuild": result_data(last) if last is not None else None,
                },
            }
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def stop_watch(workspace: str | None = None) -> dict:
        """
        Stop watching inputs.

        Args:
            workspace: Workspace of the session to stop; all sessions if omitted
        """
        try:
            if workspace is None:
                stopped = manager.stop_all()
            else:
                stopped = int(manager.stop_watch(validate_path(workspace, project_path)))
            return {"success": True, "data": {"stopped": stopped}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_build_status() -> dict:
        """
        Get build state, watch state and last result of every workspace.
        """
        return {"success": True, "data": manager.to_dict()}

    @mcp.tool()
    async def find_main_class(workspace: str) -> dict:
        """
        Find the entry point of the last successful build of a workspace.

        Reports every candidate when several classes have a main method and
        none of them is the default one.

        Args:
            workspace: Workspace directory of the build
        """
        try:
            validated = validate_path(workspace, project_path)
            result = manager.get_last_result(validated)
            if result is None:
                return {"success": False, "error": f"No build for {workspace}"}
            if not isinstance(result, Successful):
                return {"success": False, "error": "Last build failed"}
            resolution = result.retained_main_class(warn_if_several=True)
            return {"success": True, "data": resolution.to_dict()}
        except BuildError as e:
            return {"success": False, **e.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Resources ==============

    @mcp.resource(STATE_URI, mime_type="application/json")
    async def build_state_resource() -> str:
        """Build state of every workspace (JSON).

        Contains: state, watch state and last result per workspace.
        Updates when: a build starts or finishes.
        """
        return json.dumps(manager.to_dict(), indent=2)

    logger.info("Scala build MCP Server initialized")
    return mcp
