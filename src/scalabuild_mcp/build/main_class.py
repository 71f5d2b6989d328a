"""Entry point discovery in compiled output."""

from __future__ import annotations

import logging
from pathlib import Path

from .classfile import ClassFile
from .state import ClassFileError

logger = logging.getLogger(__name__)


def find_main_classes(output: Path) -> list[str]:
    """Names of classes with a ``public static void main(String[])`` method.

    Unreadable class files are skipped with a warning.
    """
    found: list[str] = []
    for path in sorted(output.rglob("*.class")):
        try:
            class_file = ClassFile.parse(path.read_bytes())
        except (OSError, ClassFileError) as e:
            logger.warning(f"Skipping {path} while looking for main classes: {e}")
            continue
        if class_file.has_main_method:
            found.append(class_file.name)
    return sorted(found)
