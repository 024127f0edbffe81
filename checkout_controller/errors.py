"""
Structured errors for the checkout controller.

Every error carries a machine-readable code, a human message and a details
dict, and can be serialized with to_dict() for the HTTP surface.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional


class CheckoutControllerError(Exception):
    """Base error with structured details."""
    code = "CONTROLLER_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message} (Original: {self.cause})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "cause": str(self.cause) if self.cause is not None else None,
        }


# -----------------------------------------------------------------------------
# Orchestration Errors
# -----------------------------------------------------------------------------
class CheckoutError(CheckoutControllerError):
    """The source-control collaborator failed. Fatal to the run, no cleanup."""
    code = "CHECKOUT_FAILED"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        locations: Optional[List[Path]] = None,
    ):
        self.locations = list(locations or [])
        super().__init__(
            message,
            details={"locations": [str(p) for p in self.locations]},
            cause=cause,
        )


class ScanError(CheckoutControllerError):
    """Filesystem error while looking for manifests."""
    code = "SCAN_FAILED"

    def __init__(self, path: Path, cause: Optional[BaseException] = None):
        self.path = Path(path)
        super().__init__(
            f"Can't scan {path}",
            details={"path": str(path)},
            cause=cause,
        )


class ModelReadError(CheckoutControllerError):
    """A manifest could not be read into a project model."""
    code = "MODEL_READ_FAILED"

    def __init__(self, manifest: Path, reason: str, cause: Optional[BaseException] = None):
        self.manifest = Path(manifest)
        super().__init__(
            f"Can't read project manifest {manifest}: {reason}",
            details={"manifest": str(manifest), "reason": reason},
            cause=cause,
        )


class ProjectImportError(CheckoutControllerError):
    """Aggregate import failure. Sources stay on disk."""
    code = "IMPORT_FAILED"

    def __init__(self, failures: Dict[str, str], imported: Optional[List[str]] = None):
        self.failures = dict(failures)
        self.imported = list(imported or [])
        super().__init__(
            f"Projects imported with errors ({len(self.failures)} failed)",
            details={"failures": self.failures, "imported": self.imported},
        )


class CleanupError(CheckoutControllerError):
    """A checkout location could not be deleted. Logged, never raised to callers."""
    code = "CLEANUP_FAILED"

    def __init__(self, location: Path, cause: Optional[BaseException] = None):
        self.location = Path(location)
        super().__init__(
            f"Can't delete {location}",
            details={"location": str(location)},
            cause=cause,
        )


# -----------------------------------------------------------------------------
# Workspace Errors
# -----------------------------------------------------------------------------
class WorkspaceError(CheckoutControllerError):
    code = "WORKSPACE_ERROR"


class ProjectNotFoundError(WorkspaceError):
    code = "PROJECT_NOT_FOUND"

    def __init__(self, project_name: str):
        super().__init__(
            f"Project '{project_name}' not found",
            details={"project_name": project_name},
        )


class ProjectAlreadyExistsError(WorkspaceError):
    code = "PROJECT_EXISTS"

    def __init__(self, project_name: str):
        super().__init__(
            f"Project '{project_name}' already exists",
            details={"project_name": project_name},
        )


# -----------------------------------------------------------------------------
# Diagnostic Errors
# -----------------------------------------------------------------------------
class GatherError(CheckoutControllerError):
    """Expected failure of a data unit or gatherer; carries its own status."""
    code = "GATHER_FAILED"

    def __init__(self, status):
        self.status = status
        super().__init__(status.message, cause=status.cause)


class BundleError(CheckoutControllerError):
    """The bundle archive itself could not be written."""
    code = "BUNDLE_FAILED"

    def __init__(self, bundle_file: Path, cause: Optional[BaseException] = None):
        self.bundle_file = Path(bundle_file)
        super().__init__(
            f"Can't write problem report bundle {bundle_file}",
            details={"bundle_file": str(bundle_file)},
            cause=cause,
        )
