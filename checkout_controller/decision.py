"""
Import decision engine.

Pure transition logic: given what the checkout and scan produced, pick the
next branch of the workflow. No I/O and no interaction happens here.

| descriptors | locations | import all | conflict | marker | decision               |
|-------------|-----------|------------|----------|--------|------------------------|
| 0           | 1         | -          | -        | yes    | OFFER_ALTERNATE_IMPORT |
| 0           | 1         | -          | -        | no     | OFFER_NEW_PROJECT      |
| 0           | >1        | -          | -        | -      | CLEANUP                |
| >=1         | -         | yes        | no       | -      | IMPORT_ALL             |
| >=1         | -         | yes        | yes      | -      | SELECT                 |
| >=1         | -         | no         | -        | -      | SELECT                 |
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

from .models import ConflictReport, ProjectDescriptor, WorkflowState


class DecisionKind(str, Enum):
    IMPORT_ALL = "import_all"
    SELECT = "select"
    OFFER_ALTERNATE_IMPORT = "offer_alternate_import"
    OFFER_NEW_PROJECT = "offer_new_project"
    CLEANUP = "cleanup"

    @property
    def state(self) -> WorkflowState:
        if self == DecisionKind.IMPORT_ALL:
            return WorkflowState.IMPORTING
        if self == DecisionKind.SELECT:
            return WorkflowState.SELECTING
        return WorkflowState.ABORTING_EMPTY


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    import_all: bool
    conflict: Optional[ConflictReport] = None
    location: Optional[Path] = None
    reason: str = ""

    def to_dict(self):
        return {
            "kind": self.kind.value,
            "import_all": self.import_all,
            "conflict": self.conflict.to_dict() if self.conflict else None,
            "location": str(self.location) if self.location else None,
            "reason": self.reason,
        }


class ImportDecisionEngine:
    """Chooses among import-all, selection and the empty-result branches."""

    @staticmethod
    def needs_conflict_check(descriptors: Sequence[ProjectDescriptor], import_all: bool) -> bool:
        """Conflicts only matter when projects were found and the caller wants them all."""
        return import_all and len(descriptors) > 0

    @staticmethod
    def needs_marker_probe(locations: Sequence[Path], descriptors: Sequence[ProjectDescriptor]) -> bool:
        """The alternate marker is only probed for a single, empty checkout."""
        return len(descriptors) == 0 and len(locations) == 1

    def decide(
        self,
        locations: Sequence[Path],
        descriptors: Sequence[ProjectDescriptor],
        import_all: bool,
        conflict: Optional[ConflictReport] = None,
        marker_found: bool = False,
    ) -> Decision:
        if not descriptors:
            if len(locations) == 1:
                kind = DecisionKind.OFFER_ALTERNATE_IMPORT if marker_found else DecisionKind.OFFER_NEW_PROJECT
                return Decision(kind, import_all=False, location=Path(locations[0]),
                                reason="No projects found in the checkout")
            return Decision(DecisionKind.CLEANUP, import_all=False,
                            reason=f"No projects found in {len(locations)} checkout locations")

        if import_all and conflict is not None and conflict.conflict:
            return Decision(DecisionKind.SELECT, import_all=False, conflict=conflict,
                            reason="Project name conflict, selection required")

        if import_all:
            return Decision(DecisionKind.IMPORT_ALL, import_all=True, conflict=conflict)

        return Decision(DecisionKind.SELECT, import_all=False, conflict=conflict,
                        reason="Interactive selection requested")
