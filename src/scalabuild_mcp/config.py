"""Server configuration from environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_SCALA_VERSION = "2.13.12"


@dataclass(frozen=True)
class ServerConfig:
    """Tool locations and defaults for builds started through the server."""

    scala_version: str = DEFAULT_SCALA_VERSION
    bloop_path: str = "bloop"
    cs_path: str = "cs"
    java_home: str | None = None
    project_root: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        """Read configuration.

        Recognized variables:
        - SCALABUILD_SCALA_VERSION: default Scala version
        - SCALABUILD_BLOOP_PATH: bloop executable
        - SCALABUILD_CS_PATH: coursier executable
        - SCALABUILD_JAVA_PATH: JAVA_HOME to use instead of fetching a JVM
        - SCALABUILD_PROJECT_ROOT: project root when no --project is given
        """
        env = os.environ if environ is None else environ
        config = cls(
            scala_version=env.get("SCALABUILD_SCALA_VERSION") or DEFAULT_SCALA_VERSION,
            bloop_path=env.get("SCALABUILD_BLOOP_PATH") or "bloop",
            cs_path=env.get("SCALABUILD_CS_PATH") or "cs",
            java_home=env.get("SCALABUILD_JAVA_PATH") or None,
            project_root=env.get("SCALABUILD_PROJECT_ROOT") or None,
        )
        logger.debug(f"Configuration: {config}")
        return config
