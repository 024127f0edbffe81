"""
Diagnostic bundles.

DiagnosticBundler.gather() writes one zip file with a folder per data unit
or gatherer. Every unit runs in its own failure boundary and stages its
entries in memory; only units that finish reach the archive. Failures become
status records, written last as pr/status-0.txt, pr/status-1.txt, ... in the
order they happened. Only a failure to create or finish the archive itself
propagates, as BundleError.
"""

import logging
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import yaml

from .errors import BundleError, GatherError
from .gatherers import DataGatherer, GatheringContext, get_gatherers
from .progress import ProgressMonitor
from .sources import (
    ArchiveTarget,
    DataSource,
    FileSource,
    GatherTarget,
    JsonSource,
    StagingTarget,
    StatusSource,
    TextSource,
)
from .status import StatusLog, StatusRecord

logger = logging.getLogger("checkout_diagnostics")

STATUS_FOLDER = "pr"
FAILURE_MESSAGE = "Failure while gathering problem report data"


@dataclass
class DiagnosticContext:
    """What the built-in data units read from."""
    settings: Any = None
    workspace: Any = None
    runs: Callable[[], Iterable[Any]] = field(default=lambda: [])


# -----------------------------------------------------------------------------
# Data Units
# -----------------------------------------------------------------------------
class Data(str, Enum):
    WORKSPACE_STATE = "workspace_state"
    SETTINGS = "settings"
    RUN_HISTORY = "run_history"
    LOG_FILE = "log_file"

    def gather(self, bundler: "DiagnosticBundler", target: GatherTarget, monitor: ProgressMonitor) -> None:
        _DATA_UNITS[self](bundler, target)


def _gather_workspace_state(bundler: "DiagnosticBundler", target: GatherTarget) -> None:
    workspace = bundler.context.workspace
    if workspace is None:
        raise GatherError(StatusRecord.warning(Data.WORKSPACE_STATE.value, "No workspace available"))
    bundler.consume("workspace", target, JsonSource("projects.json", workspace.snapshot()))


def _gather_settings(bundler: "DiagnosticBundler", target: GatherTarget) -> None:
    settings = bundler.context.settings
    if settings is None:
        raise GatherError(StatusRecord.warning(Data.SETTINGS.value, "No settings available"))
    text = yaml.safe_dump(settings.model_dump(mode="json"), default_flow_style=False, sort_keys=True)
    bundler.consume("config", target, TextSource("settings.yaml", text))


def _gather_run_history(bundler: "DiagnosticBundler", target: GatherTarget) -> None:
    for run in bundler.context.runs():
        bundler.consume("runs", target, JsonSource(f"run-{run.run_id}.json", run.to_dict()))


def _gather_log_file(bundler: "DiagnosticBundler", target: GatherTarget) -> None:
    settings = bundler.context.settings
    log_file = getattr(settings, "log_file", None)
    if not log_file:
        raise GatherError(StatusRecord.warning(Data.LOG_FILE.value, "No log file configured"))
    bundler.consume("logs", target, FileSource(Path(log_file)))


_DATA_UNITS: Dict[Data, Callable[["DiagnosticBundler", GatherTarget], None]] = {
    Data.WORKSPACE_STATE: _gather_workspace_state,
    Data.SETTINGS: _gather_settings,
    Data.RUN_HISTORY: _gather_run_history,
    Data.LOG_FILE: _gather_log_file,
}


# -----------------------------------------------------------------------------
# Bundler
# -----------------------------------------------------------------------------
@dataclass
class BundleReport:
    bundle_file: Path
    entries: List[str]
    statuses: List[StatusRecord]
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bundle_file": str(self.bundle_file),
            "entries": list(self.entries),
            "status_count": len(self.statuses),
            "statuses": [s.to_dict() for s in self.statuses],
            "created_at": self.created_at.isoformat(),
        }


class DiagnosticBundler:
    """Collect-and-continue problem report writer."""

    def __init__(self, context: Optional[DiagnosticContext] = None):
        self.context = context or DiagnosticContext()
        self.status_log = StatusLog()

    def add_status(self, status: StatusRecord) -> None:
        self.status_log.add(status)

    def gather(
        self,
        bundle_file: Path,
        data_set: Optional[Sequence[Data]] = None,
        monitor: Optional[ProgressMonitor] = None,
        gatherers: Optional[Sequence[DataGatherer]] = None,
    ) -> BundleReport:
        """
        Write a bundle with the given data units and gatherers.

        data_set defaults to every Data unit, gatherers to the registered ones.
        Raises BundleError if the archive can't be created or finished.
        """
        bundle_file = Path(bundle_file)
        data_set = list(dict.fromkeys(Data if data_set is None else data_set))
        gatherers = get_gatherers() if gatherers is None else list(gatherers)
        monitor = monitor or ProgressMonitor()
        self.status_log = StatusLog()

        try:
            bundle_file.parent.mkdir(parents=True, exist_ok=True)
            archive = ArchiveTarget(zipfile.ZipFile(bundle_file, "w", zipfile.ZIP_DEFLATED))
        except OSError as e:
            logger.error(f"Can't create bundle {bundle_file}: {e}")
            raise BundleError(bundle_file, e) from e

        try:
            try:
                self._gather(archive, data_set, gatherers, monitor)
            finally:
                archive.close()
        except (OSError, zipfile.BadZipFile) as e:
            logger.error(f"Can't write bundle {bundle_file}: {e}")
            raise BundleError(bundle_file, e) from e

        logger.info(f"Wrote bundle {bundle_file} ({len(archive.entries)} entries, {len(self.status_log)} status)")
        return BundleReport(bundle_file, list(archive.entries), list(self.status_log.records))

    def consume(self, folder: str, target: GatherTarget, source: DataSource) -> bool:
        """Add one entry to target, recording a status instead of raising."""
        try:
            target.consume(folder, source)
            return True
        except GatherError as e:
            self.add_status(e.status)
        except Exception as e:
            self.add_status(StatusRecord.error(folder, f"{FAILURE_MESSAGE}: {e}", e))
        return False

    def _gather(
        self,
        archive: ArchiveTarget,
        data_set: List[Data],
        gatherers: List[DataGatherer],
        monitor: ProgressMonitor,
    ) -> None:
        monitor.begin_task("Gathering", len(data_set) + len(gatherers))

        for data in data_set:
            monitor.subtask(f"Gathering {data.value}")
            self._run_unit(data.value, lambda stage: data.gather(self, stage, monitor), archive)
            monitor.worked(1)

        for gatherer in gatherers:
            monitor.subtask(f"Gathering {gatherer.name}")
            self._run_unit(
                gatherer.name,
                lambda stage: gatherer.gather(GatheringContext(stage, monitor, self)),
                archive,
            )
            monitor.worked(1)

        self._gather_status(archive)
        monitor.done()

    def _run_unit(self, name: str, unit: Callable[[StagingTarget], None], archive: ArchiveTarget) -> bool:
        stage = StagingTarget()
        try:
            unit(stage)
        except GatherError as e:
            logger.warning(f"Gathering {name} failed: {e.message}")
            self.add_status(e.status)
            return False
        except Exception as e:
            logger.error(f"Gathering {name} failed: {e}")
            self.add_status(StatusRecord.error(name, f"{FAILURE_MESSAGE}: {e}", e))
            return False
        stage.commit(archive)
        return True

    def _gather_status(self, archive: ArchiveTarget) -> None:
        for index, status in enumerate(self.status_log.records):
            try:
                archive.consume(STATUS_FOLDER, StatusSource(status, f"status-{index}.txt"))
            except (OSError, ValueError) as e:
                logger.error(f"Failed to save status to problem report: {e}")
