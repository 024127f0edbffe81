"""
Workspace Registry

Persistent set of named projects that checkouts are imported into.

This module provides:
1. Project model (name, on-disk location, origin metadata)
2. JSON persistence with atomic writes
3. Name lookup used by conflict detection
4. Project creation for imported and newly created projects

Names are normalized before lookup, so "Demo Core" and "demo-core" are the
same workspace entry.
"""

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ProjectAlreadyExistsError, ProjectNotFoundError, WorkspaceError

logger = logging.getLogger("checkout_workspace")


# -----------------------------------------------------------------------------
# Project Model
# -----------------------------------------------------------------------------
@dataclass
class Project:
    """A named workspace project. Returned to callers as the project handle."""
    project_id: str
    name: str
    location: str
    created_at: str
    updated_at: str
    description: str = ""
    source_manifest: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> Path:
        return Path(self.location)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(**data)


ProjectHandle = Project


# -----------------------------------------------------------------------------
# Workspace Registry
# -----------------------------------------------------------------------------
class WorkspaceRegistry:
    """
    Registry of workspace projects.

    projects_dir is where projects created from scratch get their folder;
    imported projects keep the location they were checked out to.
    """

    def __init__(self, registry_file: Path, projects_dir: Optional[Path] = None):
        self._registry_file = Path(registry_file)
        self.projects_dir = Path(projects_dir) if projects_dir else self._registry_file.parent / "projects"
        self._projects: Dict[str, Project] = {}
        self._lock = threading.RLock()
        self._load_registry()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load_registry(self) -> None:
        if not self._registry_file.exists():
            logger.info("No existing workspace file, starting fresh")
            return

        try:
            with open(self._registry_file) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to load workspace: {e}")
            raise WorkspaceError(
                "Failed to load workspace registry",
                details={"file": str(self._registry_file)},
                cause=e,
            ) from e

        for name, proj_data in data.get("projects", {}).items():
            try:
                self._projects[name] = Project.from_dict(proj_data)
            except TypeError as e:
                logger.warning(f"Skipping malformed project entry {name}: {e}")

        logger.info(f"Loaded {len(self._projects)} projects from workspace")

    def _save_registry(self) -> None:
        try:
            self._registry_file.parent.mkdir(parents=True, exist_ok=True)
            data = self.snapshot()

            # Atomic write
            temp_file = self._registry_file.with_suffix(".tmp")
            with open(temp_file, "w") as f:
                json.dump(data, f, indent=2)
            temp_file.replace(self._registry_file)

            logger.debug(f"Saved {len(self._projects)} projects to workspace")
        except OSError as e:
            logger.error(f"Failed to save workspace: {e}")
            raise WorkspaceError(
                "Failed to save workspace registry",
                details={"file": str(self._registry_file)},
                cause=e,
            ) from e

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the whole workspace."""
        with self._lock:
            return {
                "version": "1.0",
                "updated_at": datetime.utcnow().isoformat(),
                "projects": {name: proj.to_dict() for name, proj in self._projects.items()},
            }

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def exists(self, name: str) -> bool:
        return self.normalize_name(name) in self._projects

    def create(
        self,
        name: str,
        location: Optional[Path] = None,
        description: str = "",
        source_manifest: Optional[Path] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ProjectHandle:
        """
        Create a workspace project.

        Without a location the project gets a fresh folder under projects_dir.
        Raises ProjectAlreadyExistsError if the name is taken.
        """
        normalized = self.normalize_name(name)

        with self._lock:
            if normalized in self._projects:
                raise ProjectAlreadyExistsError(normalized)

            if location is None:
                location = self.projects_dir / normalized
                Path(location).mkdir(parents=True, exist_ok=True)

            now = datetime.utcnow().isoformat()
            project = Project(
                project_id=str(uuid.uuid4()),
                name=normalized,
                location=str(location),
                created_at=now,
                updated_at=now,
                description=description,
                source_manifest=str(source_manifest) if source_manifest else None,
                metadata=metadata or {},
            )
            self._projects[normalized] = project
            try:
                self._save_registry()
            except WorkspaceError:
                del self._projects[normalized]
                raise

        logger.info(f"Created project: {normalized} at {project.location}")
        return project

    def get(self, name: str) -> Optional[Project]:
        return self._projects.get(self.normalize_name(name))

    def list_projects(self) -> List[Project]:
        with self._lock:
            return sorted(self._projects.values(), key=lambda p: p.name)

    def update_location(self, name: str, location: Path) -> Project:
        with self._lock:
            project = self.get(name)
            if project is None:
                raise ProjectNotFoundError(name)
            project.location = str(location)
            project.updated_at = datetime.utcnow().isoformat()
            self._save_registry()
        return project

    def delete(self, name: str) -> None:
        """Remove a project entry. Its folder is left on disk."""
        normalized = self.normalize_name(name)
        with self._lock:
            if normalized not in self._projects:
                raise ProjectNotFoundError(normalized)
            del self._projects[normalized]
            self._save_registry()
        logger.info(f"Deleted project: {normalized}")

    def unique_name(self, base: str) -> str:
        """First free name among base, base-1, base-2, ..."""
        candidate = self.normalize_name(base)
        index = 1
        while self.exists(candidate):
            candidate = f"{self.normalize_name(base)}-{index}"
            index += 1
        return candidate

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def normalize_name(name: str) -> str:
        """Normalize a project name to a lowercase slug."""
        slug = "-".join(name.strip().lower().split())
        slug = "".join(c if c.isalnum() or c in "-_." else "" for c in slug)
        return slug.strip("-.") or "new-project"
