"""Post-processing of compiled classes for wrapped scripts.

Classes compiled from a generated wrapper report the wrapper's file name and
line numbers that include the wrapper header. This rewrites both in place so
stack traces and debuggers point at the user's script.

Callers must run it exactly once per compilation: line shifts accumulate.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path, PurePosixPath

from .classfile import ClassFile
from .state import ClassFileError, RemappingError

logger = logging.getLogger(__name__)

# generated path relative to the generated sources root -> (reported file name, line shift)
Mappings = Mapping[str, tuple[str, int]]


def _basename_index(mappings: Mappings) -> dict[str, tuple[str, int]]:
    """Mappings keyed by file name, for names that are unique."""
    by_name: dict[str, list[tuple[str, int]]] = {}
    for key, value in mappings.items():
        by_name.setdefault(PurePosixPath(key).name, []).append(value)
    return {name: values[0] for name, values in by_name.items() if len(values) == 1}


def post_process(mappings: Mappings, output: Path) -> int:
    """Rewrite positions of every class compiled from a generated source.

    A class matches a mapping when its ``SourceFile`` equals the mapping key,
    or, when the compiler only recorded a file name, the key's file name if
    no other key shares it. Classes that match nothing are not touched.

    Args:
        mappings: Generated relative path -> (reporting file name, line shift)
        output: Classes directory produced by the compile service

    Returns:
        Number of class files that matched a mapping

    Raises:
        RemappingError: If a class file cannot be read or parsed
    """
    if not mappings:
        return 0

    by_name = _basename_index(mappings)
    rewritten = 0
    for path in sorted(output.rglob("*.class")):
        try:
            data = path.read_bytes()
            class_file = ClassFile.parse(data)
        except (OSError, ClassFileError) as e:
            raise RemappingError(f"Cannot post-process {path}: {e}", path) from e

        source = class_file.source_file
        if source is None:
            continue
        mapping = mappings.get(source)
        if mapping is None and "/" not in source:
            mapping = by_name.get(source)
        if mapping is None:
            continue

        reporting_name, line_shift = mapping
        try:
            updated = class_file.with_positions(reporting_name, line_shift)
            if updated != data:
                path.write_bytes(updated)
        except (OSError, ClassFileError) as e:
            raise RemappingError(f"Cannot post-process {path}: {e}", path) from e
        rewritten += 1
        logger.debug(f"Remapped {path.name}: {source} -> {reporting_name} ({line_shift:+d})")

    if rewritten:
        logger.info(f"Corrected positions in {rewritten} class files")
    return rewritten
