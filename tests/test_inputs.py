"""Tests for build inputs."""

import pytest

from scalabuild_mcp.build.inputs import (
    Directory,
    Inputs,
    ResourceDirectory,
    SingleFile,
)
from scalabuild_mcp.build.state import InputsError


class TestFromPaths:
    """Tests for Inputs.from_paths."""

    def test_classifies_files_and_directories(self, tmp_path):
        (tmp_path / "a.sc").write_text("1\n")
        (tmp_path / "src").mkdir()

        inputs = Inputs.from_paths(["a.sc", "src"], cwd=tmp_path)

        assert inputs.elements == (SingleFile(tmp_path / "a.sc"), Directory(tmp_path / "src"))

    def test_workspace_from_file(self, tmp_path):
        (tmp_path / "a.sc").write_text("1\n")
        inputs = Inputs.from_paths(["a.sc"], cwd=tmp_path)
        assert inputs.workspace == tmp_path

    def test_workspace_from_directory(self, tmp_path):
        (tmp_path / "src").mkdir()
        inputs = Inputs.from_paths(["src"], cwd=tmp_path)
        assert inputs.workspace == tmp_path / "src"

    def test_resource_dirs_appended(self, tmp_path):
        (tmp_path / "a.sc").write_text("1\n")
        (tmp_path / "res").mkdir()

        inputs = Inputs.from_paths(["a.sc"], cwd=tmp_path, resource_dirs=["res"])

        assert inputs.elements[-1] == ResourceDirectory(tmp_path / "res")
        assert inputs.source_elements == [SingleFile(tmp_path / "a.sc")]

    def test_no_inputs(self, tmp_path):
        with pytest.raises(InputsError, match="No inputs"):
            Inputs.from_paths([], cwd=tmp_path)

    def test_missing_input(self, tmp_path):
        with pytest.raises(InputsError, match="not found"):
            Inputs.from_paths(["missing.sc"], cwd=tmp_path)

    def test_missing_resource_dir(self, tmp_path):
        (tmp_path / "a.sc").write_text("1\n")
        with pytest.raises(InputsError, match="Resource directory"):
            Inputs.from_paths(["a.sc"], cwd=tmp_path, resource_dirs=["res"])


class TestProjectName:
    """Tests for project naming."""

    def test_same_inputs_same_name(self, tmp_path):
        first = Inputs((SingleFile(tmp_path / "a.sc"),), tmp_path)
        second = Inputs((SingleFile(tmp_path / "a.sc"),), tmp_path)
        assert first.project_name == second.project_name

    def test_different_inputs_different_name(self, tmp_path):
        first = Inputs((SingleFile(tmp_path / "a.sc"),), tmp_path)
        second = Inputs((SingleFile(tmp_path / "b.sc"),), tmp_path)
        assert first.project_name != second.project_name

    def test_hash_suffix(self, tmp_path):
        inputs = Inputs((Directory(tmp_path),), tmp_path, base_project_name="demo")
        base, _, digest = inputs.project_name.rpartition("_")
        assert base == "demo"
        assert len(digest) == 12

    def test_no_hash(self, tmp_path):
        inputs = Inputs((), tmp_path, base_project_name="demo", may_append_hash=False)
        assert inputs.project_name == "demo"


class TestDerive:
    """Tests for Inputs.derive."""

    def test_derive_appends_elements(self, tmp_path):
        inputs = Inputs((SingleFile(tmp_path / "a.sc"),), tmp_path)
        extra = Directory(tmp_path / "gen")

        derived = inputs.derive(inputs.project_name + "_jmh", extra_elements=[extra])

        assert derived.elements == inputs.elements + (extra,)
        assert derived.project_name == inputs.project_name + "_jmh"
        assert derived.workspace == inputs.workspace

    def test_derive_leaves_original(self, tmp_path):
        inputs = Inputs((SingleFile(tmp_path / "a.sc"),), tmp_path)
        name = inputs.project_name

        inputs.derive("other", extra_elements=[Directory(tmp_path)])

        assert inputs.project_name == name
        assert len(inputs.elements) == 1

    def test_recursive_flags(self, tmp_path):
        assert not SingleFile(tmp_path).recursive
        assert Directory(tmp_path).recursive
        assert ResourceDirectory(tmp_path).recursive
