"""
Tests for project discovery.

Tests covering:
- Manifests at the root and nested below it
- Module nesting and flattening
- Excluded folders
- Missing roots and I/O errors
- Alternate project markers
"""

import os
from unittest.mock import patch

import pytest

from checkout_controller.errors import ScanError
from checkout_controller.scanner import ProjectScanner, collect_projects, find_markers
from tests.conftest import materialise, model


@pytest.fixture
def multi_module(tmp_path):
    """A parent project with two modules and an unrelated sibling project."""
    root = tmp_path / "repo"
    materialise(root, {
        "parent/project.yaml": model("parent", modules=("api", "impl")),
        "parent/api/project.yaml": model("api"),
        "parent/impl/project.yaml": model("impl"),
        "tools/project.yaml": model("tools"),
        "docs/index.md": "docs\n",
    })
    return root


class TestProjectScanner:
    """Tests for ProjectScanner."""

    def test_finds_top_level_projects_with_modules(self, multi_module):
        """Test that nested manifests become children of their parent."""
        projects = ProjectScanner([multi_module]).run()

        assert [p.location.name for p in projects] == ["parent", "tools"]
        parent = projects[0]
        assert [c.location.name for c in parent.children] == ["api", "impl"]
        assert all(c.parent is parent for c in parent.children)

    def test_manifest_at_root(self, tmp_path):
        """Test a checkout whose root is itself a project."""
        root = tmp_path / "single"
        materialise(root, {"project.yaml": model("single"), "sub/project.yaml": model("sub")})

        projects = ProjectScanner([root]).run()

        assert len(projects) == 1
        assert projects[0].location == root
        assert projects[0].children[0].location == root / "sub"

    def test_excluded_folders_are_skipped(self, tmp_path):
        """Test that build output and VCS folders are not scanned."""
        root = tmp_path / "repo"
        materialise(root, {
            "node_modules/lib/project.yaml": model("lib"),
            ".git/project.yaml": model("git"),
            "build/project.yaml": model("build"),
        })

        assert ProjectScanner([root]).run() == []

    def test_non_recursive_only_checks_roots(self, multi_module, tmp_path):
        """Test that recursive=False ignores nested manifests."""
        root = tmp_path / "flat"
        materialise(root, {"project.yaml": model("flat")})

        projects = ProjectScanner([multi_module, root], recursive=False).run()

        assert [p.location for p in projects] == [root]

    def test_missing_root_yields_nothing(self, tmp_path):
        """Test that a root that does not exist is not an error."""
        assert ProjectScanner([tmp_path / "gone"]).run() == []

    def test_custom_manifest_name(self, tmp_path):
        """Test scanning for a different manifest file name."""
        root = tmp_path / "repo"
        materialise(root, {"app/build.yaml": model("app"), "lib/project.yaml": model("lib")})

        projects = ProjectScanner([root], manifest_name="build.yaml").run()

        assert [p.location.name for p in projects] == ["app"]

    def test_io_error_raises_scan_error(self, tmp_path):
        """Test that errors other than not-found abort the scan."""
        root = tmp_path / "repo"
        root.mkdir()

        def broken_walk(top, onerror=None, **kwargs):
            onerror(PermissionError(13, "Permission denied", top))
            return iter(())

        with patch("checkout_controller.scanner.os.walk", side_effect=broken_walk):
            with pytest.raises(ScanError) as exc:
                ProjectScanner([root]).run()

        assert isinstance(exc.value.cause, PermissionError)


class TestCollectProjects:
    """Tests for collect_projects()."""

    def test_modules_flattened_depth_first(self, multi_module):
        """Test that every module is imported on its own by default."""
        projects = ProjectScanner([multi_module]).run()

        collected = collect_projects(projects, include_modules=False)

        assert [p.location.name for p in collected] == ["parent", "api", "impl", "tools"]

    def test_modules_kept_inside_parent(self, multi_module):
        """Test that include_modules keeps only top-level projects."""
        projects = ProjectScanner([multi_module]).run()

        collected = collect_projects(projects, include_modules=True)

        assert [p.location.name for p in collected] == ["parent", "tools"]

    def test_no_duplicates(self, multi_module):
        """Test that a descriptor given twice is collected once."""
        projects = ProjectScanner([multi_module]).run()

        collected = collect_projects(projects + projects[:1], include_modules=False)

        assert len(collected) == 4


class TestFindMarkers:
    """Tests for find_markers()."""

    def test_finds_markers(self, tmp_path):
        root = tmp_path / "repo"
        materialise(root, {"a/.project": "<project/>", "b/c/.project": "<project/>", "d/readme": "x"})

        markers = find_markers(root, ".project")

        assert sorted(m.relative_to(root).as_posix() for m in markers) == ["a/.project", "b/c/.project"]

    def test_no_markers(self, tmp_path):
        root = tmp_path / "repo"
        materialise(root, {"readme": "x"})

        assert find_markers(root, ".project") == []
        assert find_markers(tmp_path / "missing", ".project") == []
