"""Build inputs: the files and directories a build is made of."""

from __future__ import annotations

import hashlib
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Union

from .state import InputsError

DEFAULT_PROJECT_NAME = "project"


@dataclass(frozen=True)
class SingleFile:
    """One source file, watched on its own."""

    path: Path
    recursive = False


@dataclass(frozen=True)
class Directory:
    """A source directory, watched recursively."""

    path: Path
    recursive = True


@dataclass(frozen=True)
class ResourceDirectory:
    """A resource directory, added to the class path and watched recursively."""

    path: Path
    recursive = True


Element = Union[SingleFile, Directory, ResourceDirectory]


@dataclass(frozen=True)
class Inputs:
    """Ordered input elements of a build, plus where and under which name to build them."""

    elements: tuple[Element, ...]
    workspace: Path
    base_project_name: str = DEFAULT_PROJECT_NAME
    may_append_hash: bool = True
    _project_name: str = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "elements", tuple(self.elements))
        object.__setattr__(self, "workspace", Path(self.workspace).absolute())
        name = self.base_project_name
        if self.may_append_hash:
            name = f"{name}_{self._inputs_hash()}"
        object.__setattr__(self, "_project_name", name)

    @property
    def project_name(self) -> str:
        """Name of the compile service project; stable for identical inputs."""
        return self._project_name

    def _inputs_hash(self) -> str:
        digest = hashlib.sha1()
        digest.update(str(self.workspace).encode("utf-8"))
        for elem in self.elements:
            digest.update(b"\0")
            digest.update(type(elem).__name__.encode("utf-8"))
            digest.update(b":")
            digest.update(str(Path(elem.path).absolute()).encode("utf-8"))
        return digest.hexdigest()[:12]

    @property
    def source_elements(self) -> list[Element]:
        return [e for e in self.elements if not isinstance(e, ResourceDirectory)]

    def derive(
        self,
        base_project_name: str,
        may_append_hash: bool = False,
        extra_elements: Iterable[Element] = (),
    ) -> Inputs:
        """Copy with another project name and extra tail elements."""
        return replace(
            self,
            elements=self.elements + tuple(extra_elements),
            base_project_name=base_project_name,
            may_append_hash=may_append_hash,
        )

    @classmethod
    def from_paths(
        cls,
        paths: Sequence[str | os.PathLike[str]],
        cwd: str | os.PathLike[str],
        base_project_name: str = DEFAULT_PROJECT_NAME,
        resource_dirs: Sequence[str | os.PathLike[str]] = (),
    ) -> Inputs:
        """Classify user-supplied paths into input elements.

        The workspace is the first input when it is a directory, or the
        parent of the first input otherwise.

        Raises:
            InputsError: If no path is given or a path does not exist
        """
        if not paths:
            raise InputsError("No inputs provided")

        base = Path(cwd).absolute()
        elements: list[Element] = []
        for raw in paths:
            path = (base / raw).absolute()
            if path.is_dir():
                elements.append(Directory(path))
            elif path.is_file():
                elements.append(SingleFile(path))
            else:
                raise InputsError(f"Input not found: {path}")
        for raw in resource_dirs:
            path = (base / raw).absolute()
            if not path.is_dir():
                raise InputsError(f"Resource directory not found: {path}")
            elements.append(ResourceDirectory(path))

        first = elements[0]
        workspace = first.path if isinstance(first, Directory) else first.path.parent
        return cls(
            elements=tuple(elements),
            workspace=workspace,
            base_project_name=base_project_name,
        )
