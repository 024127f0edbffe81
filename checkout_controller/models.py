"""
Data model for checkout runs.

CheckoutRequest is immutable once a run starts. CheckoutResult and the
discovered ProjectDescriptors are owned by the run. ProjectDescriptor.model
is the only field filled in after scanning.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import ProjectImportConfiguration


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------
class WorkflowState(str, Enum):
    """
    Checkout workflow states.

    State machine:
    INIT → CHECKING_OUT → SCANNING → RESOLVING_CONFLICTS → DECIDING
                ↓            ↓                                ↓
             TERMINAL     TERMINAL         IMPORTING | SELECTING | ABORTING_EMPTY
                                                      ↓
                                                   TERMINAL
    """
    INIT = "init"
    CHECKING_OUT = "checking_out"
    SCANNING = "scanning"
    RESOLVING_CONFLICTS = "resolving_conflicts"
    DECIDING = "deciding"
    IMPORTING = "importing"
    SELECTING = "selecting"
    ABORTING_EMPTY = "aborting_empty"
    TERMINAL = "terminal"


class OutcomeKind(str, Enum):
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"


class ConflictReason(str, Enum):
    NAME_EXISTS = "name_exists"
    UNRESOLVED_MODEL = "unresolved_model"


# -----------------------------------------------------------------------------
# Request / Result
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class CheckoutRequest:
    """What to check out and how to import it."""
    locations: Tuple[str, ...]
    destination: Path
    import_all_projects: bool = False
    configuration: ProjectImportConfiguration = field(default_factory=ProjectImportConfiguration)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if isinstance(self.locations, (list, str)):
            locations = [self.locations] if isinstance(self.locations, str) else self.locations
            object.__setattr__(self, "locations", tuple(locations))
        if not self.locations:
            raise ValueError("At least one checkout location is required")
        if not self.destination:
            raise ValueError("Destination path is required")
        object.__setattr__(self, "destination", Path(self.destination))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "locations": list(self.locations),
            "destination": str(self.destination),
            "import_all_projects": self.import_all_projects,
            "configuration": self.configuration.to_dict(),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class CheckoutResult:
    """Local folders produced by the checkout, in checkout order."""
    locations: List[Path] = field(default_factory=list)
    cancelled: bool = False

    def add(self, location: Path) -> None:
        self.locations.append(Path(location))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locations": [str(p) for p in self.locations],
            "cancelled": self.cancelled,
        }


# -----------------------------------------------------------------------------
# Projects
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ProjectModel:
    """Parsed project manifest."""
    artifact: str
    group: Optional[str] = None
    version: Optional[str] = None
    name: Optional[str] = None
    packaging: str = "default"
    modules: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group": self.group,
            "artifact": self.artifact,
            "version": self.version,
            "name": self.name,
            "packaging": self.packaging,
            "modules": list(self.modules),
        }


@dataclass(eq=False)
class ProjectDescriptor:
    """A project unit discovered under a checkout root."""
    manifest: Path
    model: Optional[ProjectModel] = None
    children: List["ProjectDescriptor"] = field(default_factory=list)
    parent: Optional["ProjectDescriptor"] = field(default=None, repr=False)

    @property
    def location(self) -> Path:
        return self.manifest.parent

    def add_child(self, child: "ProjectDescriptor") -> None:
        child.parent = self
        self.children.append(child)

    def walk(self) -> Iterator["ProjectDescriptor"]:
        """Depth-first iteration over this descriptor and its modules."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "manifest": str(self.manifest),
            "location": str(self.location),
            "model": self.model.to_dict() if self.model else None,
            "modules": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class ConflictReport:
    """Outcome of the workspace name collision check."""
    conflict: bool
    descriptor: Optional[ProjectDescriptor] = None
    existing_name: Optional[str] = None
    reason: Optional[ConflictReason] = None

    @classmethod
    def none(cls) -> "ConflictReport":
        return cls(conflict=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conflict": self.conflict,
            "manifest": str(self.descriptor.manifest) if self.descriptor else None,
            "existing_name": self.existing_name,
            "reason": self.reason.value if self.reason else None,
        }


# -----------------------------------------------------------------------------
# Outcome
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class WorkflowOutcome:
    """Terminal result of a checkout run."""
    kind: OutcomeKind
    imported_count: int = 0
    cause: Optional[BaseException] = None
    cleaned_up: bool = False
    message: str = ""

    @classmethod
    def cancelled(cls, message: str = "Cancelled", cleaned_up: bool = False) -> "WorkflowOutcome":
        return cls(OutcomeKind.CANCELLED, cleaned_up=cleaned_up, message=message)

    @classmethod
    def failed(cls, cause: BaseException, message: Optional[str] = None) -> "WorkflowOutcome":
        return cls(OutcomeKind.FAILED, cause=cause, message=message or str(cause))

    @classmethod
    def completed(cls, imported_count: int, message: str = "", cleaned_up: bool = False) -> "WorkflowOutcome":
        return cls(OutcomeKind.COMPLETED, imported_count=imported_count, cleaned_up=cleaned_up, message=message)

    @property
    def is_ok(self) -> bool:
        return self.kind == OutcomeKind.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "imported_count": self.imported_count,
            "cause": str(self.cause) if self.cause is not None else None,
            "cleaned_up": self.cleaned_up,
            "message": self.message,
        }
