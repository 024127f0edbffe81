"""
Workspace name conflict detection.

Runs after scanning. For each descriptor the model is resolved if the scan
left it unset, the project name is derived, and the first name that already
exists in the workspace is reported. Later descriptors are not examined once
a collision is found.

A descriptor whose manifest can't be read is recorded in the run's status log
and the check moves on. If no real collision turns up, the first unreadable
descriptor is reported as a conflict so the batch goes to interactive
selection instead of a silent import.
"""

import logging
from typing import Callable, Optional, Sequence

from .errors import ModelReadError
from .models import ConflictReason, ConflictReport, ProjectDescriptor, ProjectModel
from .status import StatusLog

logger = logging.getLogger("checkout_conflicts")


class ConflictDetector:
    """First-conflict-wins name collision check against a workspace."""

    def __init__(
        self,
        read_model: Callable[..., ProjectModel],
        project_name: Callable[[ProjectModel], str],
        exists: Callable[[str], bool],
        status_log: Optional[StatusLog] = None,
    ):
        self._read_model = read_model
        self._project_name = project_name
        self._exists = exists
        self._status_log = status_log

    def detect(self, descriptors: Sequence[ProjectDescriptor]) -> ConflictReport:
        unresolved: Optional[ProjectDescriptor] = None

        for descriptor in descriptors:
            if descriptor.model is None:
                try:
                    descriptor.model = self._read_model(descriptor.manifest)
                except ModelReadError as e:
                    logger.warning(f"Treating {descriptor.manifest} as conflicting: {e.message}")
                    if self._status_log is not None:
                        self._status_log.error("conflicts", e.message, e)
                    if unresolved is None:
                        unresolved = descriptor
                    continue

            name = self._project_name(descriptor.model)
            if self._exists(name):
                logger.info(f"Project name conflict: '{name}' already exists ({descriptor.manifest})")
                return ConflictReport(
                    conflict=True,
                    descriptor=descriptor,
                    existing_name=name,
                    reason=ConflictReason.NAME_EXISTS,
                )

        if unresolved is not None:
            return ConflictReport(
                conflict=True,
                descriptor=unresolved,
                reason=ConflictReason.UNRESOLVED_MODEL,
            )

        return ConflictReport.none()
