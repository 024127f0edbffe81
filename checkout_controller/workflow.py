"""
Checkout workflow.

One run takes a CheckoutRequest through the whole pipeline:

    INIT → CHECKING_OUT → SCANNING → [RESOLVING_CONFLICTS] → DECIDING
         → IMPORTING | SELECTING | ABORTING_EMPTY → TERMINAL

Each run owns its StatusLog, CheckoutResult and state history. Checkout and
scan failures end the run as FAILED without cleanup; a cancelled checkout,
or a run aborted before its import job was submitted, removes what was
checked out so far.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .checkout import CheckoutOperation
from .cleanup import cleanup
from .config import DEFAULT_ALTERNATE_MARKER
from .conflicts import ConflictDetector
from .coordinator import ImportCoordinator
from .decision import Decision, ImportDecisionEngine
from .errors import CheckoutError, ScanError
from .importer import ProjectImporter
from .interaction import Interaction
from .jobs import JobScheduler
from .manifest import read_model
from .models import (
    CheckoutRequest,
    CheckoutResult,
    ConflictReport,
    ProjectDescriptor,
    ProjectModel,
    WorkflowOutcome,
    WorkflowState,
)
from .progress import ProgressMonitor
from .scanner import ProjectScanner, collect_projects, find_markers
from .scm import SourceControlClient
from .status import StatusLog
from .workspace import WorkspaceRegistry

logger = logging.getLogger("checkout_workflow")


@dataclass
class WorkflowRun:
    """Everything one run produced, kept for reporting."""
    request: CheckoutRequest
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: WorkflowState = WorkflowState.INIT
    history: List[Dict[str, Any]] = field(default_factory=list)
    status_log: StatusLog = field(default_factory=StatusLog)
    result: CheckoutResult = field(default_factory=CheckoutResult)
    descriptors: List[ProjectDescriptor] = field(default_factory=list)
    conflict: Optional[ConflictReport] = None
    decision: Optional[Decision] = None
    outcome: Optional[WorkflowOutcome] = None
    job_id: Optional[str] = None
    import_job_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append({"state": self.state, "at": self.created_at})

    def enter(self, state: WorkflowState) -> None:
        logger.info(f"Run {self.run_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append({"state": state, "at": datetime.utcnow()})

    def finish(self, outcome: WorkflowOutcome) -> WorkflowOutcome:
        self.outcome = outcome
        self.completed_at = datetime.utcnow()
        self.enter(WorkflowState.TERMINAL)
        logger.info(f"Run {self.run_id} finished: {outcome.kind.value} ({outcome.message})")
        return outcome

    @property
    def states(self) -> List[WorkflowState]:
        return [entry["state"] for entry in self.history]

    @property
    def finished(self) -> bool:
        return self.state == WorkflowState.TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "job_id": self.job_id,
            "import_job_id": self.import_job_id,
            "request": self.request.to_dict(),
            "state": self.state.value,
            "history": [
                {"state": entry["state"].value, "at": entry["at"].isoformat()}
                for entry in self.history
            ],
            "result": self.result.to_dict(),
            "projects": [d.to_dict() for d in self.descriptors],
            "conflict": self.conflict.to_dict() if self.conflict else None,
            "decision": self.decision.to_dict() if self.decision else None,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "status": self.status_log.to_list(),
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class CheckoutWorkflow:
    """
    Runs checkout requests against shared collaborators.

    The source-control client, workspace, importer and import scheduler are
    shared by all runs; the interaction is chosen per run.
    """

    def __init__(
        self,
        client: SourceControlClient,
        workspace: WorkspaceRegistry,
        importer: ProjectImporter,
        import_scheduler: JobScheduler,
        alternate_marker: str = DEFAULT_ALTERNATE_MARKER,
        model_reader: Callable[[Path], ProjectModel] = read_model,
    ):
        self.client = client
        self.workspace = workspace
        self.importer = importer
        self.import_scheduler = import_scheduler
        self.alternate_marker = alternate_marker
        self.model_reader = model_reader
        self.engine = ImportDecisionEngine()

    async def run(
        self,
        request: CheckoutRequest,
        interaction: Interaction,
        monitor: Optional[ProgressMonitor] = None,
        run: Optional[WorkflowRun] = None,
    ) -> WorkflowRun:
        """Run the whole pipeline. Always returns a finished WorkflowRun."""
        run = run or WorkflowRun(request)
        monitor = monitor or ProgressMonitor()

        try:
            outcome = await self._run(run, interaction, monitor)
        except asyncio.CancelledError:
            run.status_log.cancelled("workflow", "Run aborted")
            cleaned_up = run.import_job_id is None
            if cleaned_up:
                cleanup(run.result.locations, run.status_log)
            run.finish(WorkflowOutcome.cancelled(message="Aborted", cleaned_up=cleaned_up))
            raise
        except Exception as e:
            logger.error(f"Run {run.run_id} failed unexpectedly: {e}")
            run.status_log.error("workflow", "Unexpected failure", e)
            outcome = WorkflowOutcome.failed(e)

        run.finish(outcome)
        return run

    async def _run(self, run: WorkflowRun, interaction: Interaction, monitor: ProgressMonitor) -> WorkflowOutcome:
        request = run.request
        configuration = request.configuration

        # Checkout
        run.enter(WorkflowState.CHECKING_OUT)
        monitor.begin_task("Checking out", len(request.locations))
        run.result = CheckoutResult()
        try:
            await CheckoutOperation(self.client).run(request, monitor, run.result)
        except CheckoutError as e:
            run.result = CheckoutResult(list(e.locations))
            run.status_log.error("checkout", e.message, e)
            return WorkflowOutcome.failed(e)
        finally:
            monitor.done()

        if run.result.cancelled or monitor.is_cancelled:
            return self._cancel(run)

        # Scan
        run.enter(WorkflowState.SCANNING)
        scanner = ProjectScanner(run.result.locations, manifest_name=configuration.manifest_name)
        try:
            run.descriptors = await asyncio.to_thread(scanner.run)
        except ScanError as e:
            run.status_log.error("scanner", e.message, e)
            return WorkflowOutcome.failed(e)

        if monitor.is_cancelled:
            return self._cancel(run)

        # Conflicts
        import_all = request.import_all_projects
        if self.engine.needs_conflict_check(run.descriptors, import_all):
            run.enter(WorkflowState.RESOLVING_CONFLICTS)
            detector = ConflictDetector(
                self.model_reader,
                configuration.project_name,
                self.workspace.exists,
                run.status_log,
            )
            run.conflict = detector.detect(collect_projects(run.descriptors, configuration.include_modules))

        markers: List[Path] = []
        if self.engine.needs_marker_probe(run.result.locations, run.descriptors):
            markers = find_markers(run.result.locations[0], self.alternate_marker)

        # Decide
        run.enter(WorkflowState.DECIDING)
        run.decision = self.engine.decide(
            run.result.locations,
            run.descriptors,
            import_all,
            conflict=run.conflict,
            marker_found=bool(markers),
        )
        if import_all and not run.decision.import_all and run.descriptors:
            logger.info(f"Run {run.run_id}: import of all projects downgraded to selection ({run.decision.reason})")

        if monitor.is_cancelled:
            return self._cancel(run)

        run.enter(run.decision.kind.state)
        coordinator = ImportCoordinator(
            interaction,
            self.importer,
            self.workspace,
            self.import_scheduler,
            run.status_log,
            monitor,
        )
        try:
            return await coordinator.execute(run.decision, run.result, run.descriptors, configuration, markers)
        finally:
            run.import_job_id = coordinator.import_job_id

    def _cancel(self, run: WorkflowRun) -> WorkflowOutcome:
        run.status_log.cancelled("workflow", "Run cancelled")
        cleanup(run.result.locations, run.status_log)
        return WorkflowOutcome.cancelled(cleaned_up=True)
