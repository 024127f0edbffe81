"""
Local project scanner.

Walks checkout roots for project manifests. A manifest found below another
manifest's folder becomes a module of the nearest enclosing project. The
scanner never reads manifests and never touches the workspace.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Sequence

from .errors import ScanError
from .models import ProjectDescriptor

logger = logging.getLogger("checkout_scanner")

EXCLUDED_DIRS = {
    ".git", ".hg", ".svn", "node_modules", "__pycache__", ".venv", "venv",
    "target", "build", "dist", ".tox", ".nox",
}


class ProjectScanner:
    """Find project manifests under one or more root folders."""

    def __init__(
        self,
        roots: Sequence[Path],
        recursive: bool = True,
        manifest_name: str = "project.yaml",
    ):
        self.roots = [Path(r) for r in roots]
        self.recursive = recursive
        self.manifest_name = manifest_name
        self._projects: List[ProjectDescriptor] = []

    @property
    def projects(self) -> List[ProjectDescriptor]:
        return list(self._projects)

    def run(self) -> List[ProjectDescriptor]:
        """Scan all roots. Raises ScanError on I/O errors other than not-found."""
        self._projects = []
        for root in self.roots:
            self._projects.extend(self._scan_root(root))
        logger.info(f"Found {len(self._projects)} project(s) in {len(self.roots)} location(s)")
        return self.projects

    def _scan_root(self, root: Path) -> List[ProjectDescriptor]:
        if not root.exists():
            logger.debug(f"Scan root does not exist: {root}")
            return []
        if not root.is_dir():
            return []

        if not self.recursive:
            manifest = root / self.manifest_name
            return [ProjectDescriptor(manifest=manifest)] if manifest.is_file() else []

        def on_error(error: OSError) -> None:
            if isinstance(error, FileNotFoundError):
                return
            raise ScanError(Path(error.filename or root), error) from error

        top_level: List[ProjectDescriptor] = []
        by_dir: Dict[Path, ProjectDescriptor] = {}

        # os.walk is top-down, so a parent folder is always seen before its modules
        for dirpath, dirnames, filenames in os.walk(str(root), onerror=on_error):
            dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS)
            if self.manifest_name not in filenames:
                continue

            current = Path(dirpath)
            descriptor = ProjectDescriptor(manifest=current / self.manifest_name)
            by_dir[current] = descriptor

            parent = self._enclosing(current, root, by_dir)
            if parent is None:
                top_level.append(descriptor)
            else:
                parent.add_child(descriptor)

        return top_level

    @staticmethod
    def _enclosing(folder: Path, root: Path, by_dir: Dict[Path, ProjectDescriptor]):
        for candidate in folder.parents:
            if candidate in by_dir:
                return by_dir[candidate]
            if candidate == root:
                break
        return None


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def collect_projects(
    descriptors: Sequence[ProjectDescriptor],
    include_modules: bool,
) -> List[ProjectDescriptor]:
    """
    Flatten a descriptor tree into the list of projects to import.

    include_modules=True keeps modules inside their parent project, so only the
    given descriptors are returned. Otherwise every module is returned too,
    depth-first, each one exactly once.
    """
    collected: List[ProjectDescriptor] = []
    seen = set()
    for descriptor in descriptors:
        candidates = [descriptor] if include_modules else list(descriptor.walk())
        for candidate in candidates:
            if id(candidate) in seen:
                continue
            seen.add(id(candidate))
            collected.append(candidate)
    return collected


def find_markers(location: Path, marker: str) -> List[Path]:
    """Find alternate project markers (files named `marker`) below location."""
    location = Path(location)
    if not location.is_dir():
        return []
    found = []
    for dirpath, dirnames, filenames in os.walk(str(location)):
        dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS)
        if marker in filenames:
            found.append(Path(dirpath) / marker)
    return found
