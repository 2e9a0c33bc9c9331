# tests/io/test_path.py

import os

import pytest
from pathlib import PurePath

from fnbuilder.io.path import path_in_scope, relative_in_scope, resolve_path
from fnbuilder.exceptions import ScopeViolation, ContextError


class TestResolvePath:

    def test_relative_path_is_anchored_at_base(self):
        assert resolve_path("a/b", "/project") == PurePath("/project/a/b")

    def test_dot_segments_are_collapsed(self):
        assert resolve_path("a/../b/./c", "/project") == PurePath("/project/b/c")

    def test_absolute_path_ignores_base(self):
        assert resolve_path("/etc/passwd", "/project") == PurePath("/etc/passwd")

    def test_default_base_is_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert resolve_path("x") == PurePath(os.path.abspath(tmp_path / "x"))


class TestPathInScope:

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("common", "/project/common"),
            ("common/lib/util.py", "/project/common/lib/util.py"),
            ("./common/../shared", "/project/shared"),
            ("/project/abs", "/project/abs"),
        ],
    )
    def test_descendants_are_accepted(self, path, expected):
        assert path_in_scope(path, "/project", base="/project") == expected

    @pytest.mark.parametrize("path", [".", "./", "/project", "common/.."])
    def test_scope_itself_is_rejected(self, path):
        with pytest.raises(ScopeViolation, match="equal the entire project"):
            path_in_scope(path, "/project", base="/project")

    @pytest.mark.parametrize("path", ["../../etc", "..", "/etc/passwd", "common/../../other"])
    def test_paths_outside_are_rejected(self, path):
        with pytest.raises(ScopeViolation, match="outside of the build context") as exc_info:
            path_in_scope(path, "/project", base="/project")
        assert exc_info.value.path == path
        assert not exc_info.value.resolved.startswith("/project/")

    def test_sibling_sharing_a_prefix_is_rejected(self):
        """/project-other starts with the string /project but is not inside it."""
        with pytest.raises(ScopeViolation):
            path_in_scope("/project-other/file", "/project", base="/project")

    def test_relative_scope_uses_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert path_in_scope("sub/dir") == os.path.abspath(tmp_path / "sub" / "dir")
        with pytest.raises(ScopeViolation):
            path_in_scope("../../etc")

    def test_scope_violation_is_a_context_error(self):
        with pytest.raises(ContextError):
            path_in_scope("..", "/project", base="/project")


class TestRelativeInScope:

    def test_returns_path_below_scope(self):
        assert relative_in_scope("./a/b/../c", "/project", base="/project") == PurePath("a/c")

    def test_absolute_descendant(self):
        assert relative_in_scope("/project/x/y", "/project", base="/project") == PurePath("x/y")

    def test_rejects_escape(self):
        with pytest.raises(ScopeViolation):
            relative_in_scope("../x", "/project", base="/project")
