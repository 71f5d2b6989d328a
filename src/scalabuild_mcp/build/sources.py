"""Source materialization: turn build inputs into compilable files.

Scripts (``.sc``) are not valid compilation units, so each one is wrapped into
a generated ``.scala`` file. The number of lines inserted before the script's
first line is recorded so compiled positions can be shifted back later.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from . import constants
from .inputs import Directory, Inputs, ResourceDirectory, SingleFile
from .options import CodeWrapper, Dependency
from .state import InputsError

logger = logging.getLogger(__name__)

# //> using lib "org::name:1.0"   //> using main-class foo.Main
USING_DIRECTIVE_PATTERN = re.compile(
    r'^//>\s*using\s+(?P<key>[\w.-]+)\s+(?P<values>.+?)\s*$'
)

_IDENTIFIER_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


@dataclass(frozen=True)
class GeneratedSource:
    """A wrapped script: where it was written and what it stands for."""

    path: Path
    reporting_path: Path
    top_wrapper_lines: int

    def __post_init__(self) -> None:
        if self.top_wrapper_lines < 0:
            raise ValueError(f"Negative wrapper length for {self.path}")


@dataclass(frozen=True)
class Sources:
    """Everything the compiler needs to know about the user's sources."""

    paths: tuple[Path, ...] = ()
    generated: tuple[GeneratedSource, ...] = ()
    resource_dirs: tuple[Path, ...] = ()
    main_class: str | None = None
    dependencies: tuple[Dependency, ...] = ()

    @property
    def all_paths(self) -> list[Path]:
        return list(self.paths) + [g.path for g in self.generated]


class SourceMaterializer(Protocol):
    def materialize(
        self,
        inputs: Inputs,
        code_wrapper: CodeWrapper,
        platform_suffix: str,
        scala_binary_version: str,
        generated_src_root: Path,
    ) -> Sources:
        """Produce compilable sources, writing wrapped scripts under ``generated_src_root``."""
        ...


def _identifier(name: str) -> str:
    ident = _IDENTIFIER_UNSAFE.sub("_", name)
    if not ident or ident[0].isdigit():
        ident = "_" + ident
    return ident


def wrap_script(
    code: str,
    name: str,
    package: tuple[str, ...],
    code_wrapper: CodeWrapper,
) -> tuple[str, int, str]:
    """Wrap script code into a compilation unit.

    Returns:
        Tuple of (generated code, header line count, main class name)
    """
    header = ""
    if package:
        header += f"package {'.'.join(package)}\n\n"
    prefix = ".".join(package) + "." if package else ""

    if code_wrapper == CodeWrapper.APP:
        header += f"object {name} extends App {{\n"
        footer = "\n}\n"
        main_class = prefix + name
    else:
        header += f"object {name} {{\n"
        footer = (
            "\n}\n\n"
            f"object {name}_sc {{\n"
            "  def main(args: Array[String]): Unit = {\n"
            f"    {name}.hashCode()\n"
            "  }\n"
            "}\n"
        )
        main_class = f"{prefix}{name}_sc"

    if not code.endswith("\n"):
        code += "\n"
    return header + code + footer, header.count("\n"), main_class


def parse_using_directives(
    code: str,
    scala_binary_version: str,
    platform_suffix: str,
) -> tuple[list[Dependency], str | None]:
    """Read ``//> using`` directives from the top of a source file."""
    dependencies: list[Dependency] = []
    main_class: str | None = None

    for raw in code.splitlines():
        line = raw.strip()
        if not line:
            continue
        match = USING_DIRECTIVE_PATTERN.match(line)
        if not match:
            if line.startswith("//"):
                continue
            break
        key = match.group("key")
        values = [v.strip('"') for v in match.group("values").split()]
        if key in ("lib", "dep", "dependency"):
            for value in values:
                try:
                    dependencies.append(
                        Dependency.parse(value, scala_binary_version, platform_suffix)
                    )
                except ValueError as e:
                    raise InputsError(str(e)) from e
        elif key in ("main-class", "mainClass"):
            main_class = values[0]
        else:
            logger.debug(f"Ignoring using directive: {key}")

    return dependencies, main_class


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InputsError(f"Cannot read source {path}: {e}") from e


def _write_if_changed(path: Path, content: str) -> None:
    if path.is_file() and path.read_text(encoding="utf-8") == content:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _walk_sources(root: Path) -> Iterator[Path]:
    """Yield source files under ``root``, skipping hidden directories and files."""
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root)
        if any(part.startswith(".") for part in rel.parts):
            continue
        if path.is_file() and path.suffix in constants.SOURCE_EXTENSIONS:
            yield path


class ScalaSourceMaterializer:
    """Default materializer for ``.scala``, ``.java`` and ``.sc`` inputs."""

    def materialize(
        self,
        inputs: Inputs,
        code_wrapper: CodeWrapper,
        platform_suffix: str,
        scala_binary_version: str,
        generated_src_root: Path,
    ) -> Sources:
        paths: list[Path] = []
        scripts: list[tuple[Path, tuple[str, ...]]] = []
        resource_dirs: list[Path] = []

        for elem in inputs.elements:
            if isinstance(elem, ResourceDirectory):
                resource_dirs.append(elem.path)
            elif isinstance(elem, Directory):
                for path in _walk_sources(elem.path):
                    if path.suffix == constants.SCRIPT_EXTENSION:
                        package = tuple(
                            _identifier(p) for p in path.parent.relative_to(elem.path).parts
                        )
                        scripts.append((path, package))
                    else:
                        paths.append(path)
            elif isinstance(elem, SingleFile):
                if elem.path.suffix == constants.SCRIPT_EXTENSION:
                    scripts.append((elem.path, ()))
                elif elem.path.suffix in constants.SOURCE_EXTENSIONS:
                    paths.append(elem.path)
                else:
                    raise InputsError(f"Unrecognized source file: {elem.path}")

        dependencies: list[Dependency] = []
        main_class: str | None = None
        for path in paths:
            if path.suffix == constants.JAVA_EXTENSION:
                continue
            deps, main = parse_using_directives(
                _read_source(path), scala_binary_version, platform_suffix
            )
            dependencies.extend(deps)
            main_class = main or main_class

        generated: list[GeneratedSource] = []
        script_main_classes: list[str] = []
        used_targets: set[Path] = set()
        for script, package in scripts:
            code = _read_source(script)
            deps, main = parse_using_directives(code, scala_binary_version, platform_suffix)
            dependencies.extend(deps)
            main_class = main or main_class

            base_name = name = _identifier(script.stem)
            target = generated_src_root.joinpath(*package, name + constants.SCALA_EXTENSION)
            # Same-named scripts from different directories
            index = 1
            while target in used_targets:
                index += 1
                name = f"{base_name}_{index}"
                target = generated_src_root.joinpath(*package, name + constants.SCALA_EXTENSION)
            if name != base_name:
                logger.debug(f"Wrapping {script} as {name} to avoid a name clash")
            used_targets.add(target)

            wrapped, header_lines, script_main = wrap_script(code, name, package, code_wrapper)
            _write_if_changed(target, wrapped)
            generated.append(GeneratedSource(target, script, header_lines))
            script_main_classes.append(script_main)

        if main_class is None and len(script_main_classes) == 1:
            main_class = script_main_classes[0]

        # keep first occurrence order
        unique_deps = tuple(dict.fromkeys(dependencies))
        logger.debug(
            f"Materialized {len(paths)} sources and {len(generated)} scripts "
            f"for {inputs.project_name}"
        )
        return Sources(
            paths=tuple(paths),
            generated=tuple(generated),
            resource_dirs=tuple(resource_dirs),
            main_class=main_class,
            dependencies=unique_deps,
        )
