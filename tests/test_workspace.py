"""Tests for workspace enumeration and reads."""

import os
import warnings
from pathlib import Path

import pytest

from review_rag.config import DEFAULT_EXCLUDE_GLOB, DEFAULT_INCLUDE_GLOB, split_globs
from review_rag.workspace import FileTooLargeError, Workspace, compile_patterns, expand_braces

from conftest import write_file


class TestExpandBraces:

    def test_no_braces(self):
        assert expand_braces("**/*.py") == ["**/*.py"]

    def test_single_group(self):
        assert expand_braces("**/*.{ts,js}") == ["**/*.ts", "**/*.js"]

    def test_multiple_groups(self):
        assert sorted(expand_braces("{src,lib}/*.{x,y}")) == ["lib/*.x", "lib/*.y", "src/*.x", "src/*.y"]


class TestCompilePatterns:

    def test_compiles_without_deprecation_warning(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            spec = compile_patterns(["**/*.{ts,py}", "**/node_modules/**"])
        assert spec.match_file("main.py")
        assert spec.match_file("src/app.ts")
        assert spec.match_file("node_modules/")
        assert not spec.match_file("README.md")


class TestFindFiles:

    @pytest.fixture
    def root(self, workspace_root):
        for rel in ("app.ts", "src/main.py", "src/deep/nested/util.go", "web/site.min.js",
                    "web/app.js", "types/index.d.ts", "node_modules/lib/index.js",
                    "dist/bundle.js", "docs/readme.md", ".git/hooks/hook.py"):
            write_file(workspace_root, rel, "content\n")
        return workspace_root

    def test_default_globs(self, root):
        files = Workspace(root).find_files(split_globs(DEFAULT_INCLUDE_GLOB), split_globs(DEFAULT_EXCLUDE_GLOB))
        relative = [f.relative_to(root).as_posix() for f in files]
        assert relative == ["app.ts", "src/main.py", "src/deep/nested/util.go", "web/app.js"]

    def test_max_results(self, root):
        files = Workspace(root).find_files(["**/*"], [], max_results=3)
        assert len(files) == 3

    def test_excluded_directories_not_descended(self, root, monkeypatch):
        visited = []
        real_walk = os.walk

        def recording_walk(top, *args, **kwargs):
            for dirpath, dirnames, filenames in real_walk(top, *args, **kwargs):
                visited.append(Path(dirpath).name)
                yield dirpath, dirnames, filenames

        monkeypatch.setattr(os, "walk", recording_walk)
        files = Workspace(root).find_files(split_globs(DEFAULT_INCLUDE_GLOB), split_globs(DEFAULT_EXCLUDE_GLOB))

        assert "web/app.js" in [f.relative_to(root).as_posix() for f in files]
        assert "node_modules" not in visited
        assert "dist" not in visited
        assert {"src", "deep", "nested", "web"} <= set(visited)

    def test_vcs_directories_never_walked(self, root):
        files = Workspace(root).find_files(["**/*.py"], [])
        assert all(".git" not in f.parts for f in files)


class TestPaths:

    def test_relative_path_is_posix(self, workspace_root):
        ws = Workspace(workspace_root)
        assert ws.relative_path(workspace_root / "src" / "a.py") == "src/a.py"
        assert ws.relative_path("src/a.py") == "src/a.py"

    def test_absolute_path(self, workspace_root):
        assert Workspace(workspace_root).absolute_path("src/a.py") == workspace_root.resolve() / "src" / "a.py"


class TestReadText:

    def test_reads_utf8(self, workspace_root):
        write_file(workspace_root, "a.py", "naïve = 'café'\n")
        assert Workspace(workspace_root).read_text("a.py") == "naïve = 'café'\n"

    def test_too_large(self, workspace_root):
        write_file(workspace_root, "big.py", "x" * 200)
        with pytest.raises(FileTooLargeError) as exc_info:
            Workspace(workspace_root).read_text("big.py", max_bytes=100)
        assert exc_info.value.size == 200
        assert exc_info.value.limit == 100

    def test_missing_file(self, workspace_root):
        with pytest.raises(OSError):
            Workspace(workspace_root).read_text("nope.py")
