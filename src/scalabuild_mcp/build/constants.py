"""Coordinates and versions of the artifacts the pipeline adds on its own."""

from __future__ import annotations

from typing import Final

SCALA_CLI_ORGANIZATION: Final[str] = "org.virtuslab.scala-cli"
SCALA_CLI_VERSION: Final[str] = "0.1.0"

RUNNER_MODULE: Final[str] = "runner"
TEST_RUNNER_MODULE: Final[str] = "test-runner"
STUBS_MODULE: Final[str] = "stubs"

LINE_MODIFIER_PLUGIN_ORGANIZATION: Final[str] = SCALA_CLI_ORGANIZATION
LINE_MODIFIER_PLUGIN_MODULE: Final[str] = "line-modifier-compiler-plugin"
LINE_MODIFIER_PLUGIN_VERSION: Final[str] = SCALA_CLI_VERSION

SCALA_JS_VERSION: Final[str] = "1.16.0"
SCALA_NATIVE_VERSION: Final[str] = "0.4.17"

JMH_ORGANIZATION: Final[str] = "org.openjdk.jmh"
JMH_VERSION: Final[str] = "1.37"
JMH_GENERATOR_MAIN_CLASS: Final[str] = "org.openjdk.jmh.generators.bytecode.JmhBytecodeGenerator"

# Directory (under the workspace) holding Bloop files and build outputs
BUILD_DIR_NAME: Final[str] = ".scala"
BLOOP_DIR_NAME: Final[str] = ".bloop"

BLOOP_CONFIG_VERSION: Final[str] = "1.4.0"

SCRIPT_EXTENSION: Final[str] = ".sc"
SCALA_EXTENSION: Final[str] = ".scala"
JAVA_EXTENSION: Final[str] = ".java"
SOURCE_EXTENSIONS: Final[tuple[str, ...]] = (SCRIPT_EXTENSION, SCALA_EXTENSION, JAVA_EXTENSION)
