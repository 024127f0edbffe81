"""
Project importer.

Turns discovered project descriptors into workspace projects. Every project
is attempted once; failures are collected and raised together at the end as
a ProjectImportError. Nothing is deleted on failure.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .config import ProjectImportConfiguration
from .errors import CheckoutControllerError, ModelReadError, ProjectAlreadyExistsError, ProjectImportError
from .manifest import read_model
from .models import ProjectDescriptor, ProjectModel
from .progress import ProgressMonitor
from .workspace import Project, WorkspaceRegistry

logger = logging.getLogger("checkout_importer")


@dataclass
class ImportSummary:
    imported: List[Project] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.imported)


class ProjectImporter:
    """Registers descriptors as workspace projects."""

    def __init__(
        self,
        workspace: WorkspaceRegistry,
        model_reader: Callable[[Path], ProjectModel] = read_model,
    ):
        self.workspace = workspace
        self._read_model = model_reader

    def import_projects(
        self,
        descriptors: Sequence[ProjectDescriptor],
        configuration: ProjectImportConfiguration,
        monitor: Optional[ProgressMonitor] = None,
    ) -> ImportSummary:
        monitor = monitor or ProgressMonitor()
        monitor.begin_task("Importing projects", len(descriptors))

        summary = ImportSummary()
        failures: Dict[str, str] = {}

        for descriptor in descriptors:
            monitor.subtask(f"Importing {descriptor.location}")
            try:
                summary.imported.append(self._import_one(descriptor, configuration))
            except (CheckoutControllerError, OSError) as e:
                logger.error(f"Failed to import {descriptor.manifest}: {e}")
                failures[str(descriptor.manifest)] = str(e)
            monitor.worked(1)

        monitor.done()

        if failures:
            raise ProjectImportError(failures, imported=[p.name for p in summary.imported])

        logger.info(f"Imported {summary.count} project(s)")
        return summary

    def _import_one(self, descriptor: ProjectDescriptor, configuration: ProjectImportConfiguration) -> Project:
        if descriptor.model is None:
            descriptor.model = self._read_model(descriptor.manifest)
        name = configuration.project_name(descriptor.model)
        if not name:
            raise ModelReadError(descriptor.manifest, "can't derive a project name")

        if self.workspace.exists(name):
            raise ProjectAlreadyExistsError(self.workspace.normalize_name(name))

        if configuration.needs_rename and descriptor.parent is None:
            rename_location(descriptor, self.workspace.normalize_name(name))

        return self.workspace.create(
            name,
            location=descriptor.location,
            description=descriptor.model.name or "",
            source_manifest=descriptor.manifest,
            metadata={
                "group": descriptor.model.group,
                "artifact": descriptor.model.artifact,
                "version": descriptor.model.version,
                "imported": True,
            },
        )


def rename_location(descriptor: ProjectDescriptor, name: str) -> bool:
    """
    Rename a top-level project folder to the project name.

    Skipped when the folder already has that name or the target exists.
    Manifest paths of the whole subtree are rebased onto the new folder.
    """
    old_location = descriptor.location
    new_location = old_location.parent / name
    if old_location.name == name or new_location.exists():
        return False

    old_location.rename(new_location)
    for d in descriptor.walk():
        d.manifest = new_location / d.manifest.relative_to(old_location)
    logger.info(f"Renamed {old_location} to {new_location}")
    return True
