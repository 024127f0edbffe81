"""
Checkout controller.

Process-wide facade over the workflow: owns the settings, the workspace,
the job schedulers, the prompt queue and the registry of runs. Runs are
started as background jobs and can be followed, answered and cancelled by
run id.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import ControllerSettings, ProjectImportConfiguration
from .diagnostics import BundleReport, Data, DiagnosticBundler, DiagnosticContext
from .importer import ProjectImporter
from .interaction import Interaction, PromptQueue
from .jobs import JobHandle, JobScheduler
from .models import CheckoutRequest
from .progress import ProgressMonitor
from .scm import DefaultCheckoutClient, SourceControlClient
from .workflow import CheckoutWorkflow, WorkflowRun
from .workspace import WorkspaceRegistry

logger = logging.getLogger("checkout_controller")

CHECKOUT_JOB_NAME = "Checking out projects"


class CheckoutController:
    """Starts, tracks and cancels checkout runs."""

    def __init__(
        self,
        settings: Optional[ControllerSettings] = None,
        client: Optional[SourceControlClient] = None,
        workspace: Optional[WorkspaceRegistry] = None,
        prompts: Optional[PromptQueue] = None,
    ):
        self.settings = settings or ControllerSettings()
        self.client = client or DefaultCheckoutClient.from_settings(self.settings)
        self.workspace = workspace or WorkspaceRegistry(self.settings.workspace_file)
        self.prompts = prompts or PromptQueue()
        self.scheduler = JobScheduler(max_concurrent=self.settings.max_concurrent_jobs)
        self.import_scheduler = JobScheduler(max_concurrent=1)
        self.importer = ProjectImporter(self.workspace)
        self.workflow = CheckoutWorkflow(
            self.client,
            self.workspace,
            self.importer,
            self.import_scheduler,
            alternate_marker=self.settings.alternate_marker,
        )
        self._runs: Dict[str, WorkflowRun] = {}
        self._handles: Dict[str, JobHandle] = {}

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    def start_checkout(
        self,
        locations: Sequence[str],
        destination: Optional[Path] = None,
        import_all_projects: bool = False,
        configuration: Optional[ProjectImportConfiguration] = None,
        interaction: Optional[Interaction] = None,
    ) -> WorkflowRun:
        """
        Submit a checkout run. Must be called from inside the event loop.

        Without an interaction the run asks its questions through the prompt
        queue.
        """
        request = CheckoutRequest(
            locations=tuple(locations),
            destination=Path(destination) if destination else self.settings.checkout_root,
            import_all_projects=import_all_projects,
            configuration=configuration or self.settings.import_configuration(),
        )
        run = WorkflowRun(request)
        if interaction is None:
            interaction = self.prompts.for_run(run.run_id)

        async def execute(monitor: ProgressMonitor) -> WorkflowRun:
            return await self.workflow.run(request, interaction, monitor, run)

        handle = self.scheduler.submit(CHECKOUT_JOB_NAME, execute)
        run.job_id = handle.job_id
        self._runs[run.run_id] = run
        self._handles[run.run_id] = handle
        logger.info(f"Started run {run.run_id} for {len(request.locations)} location(s)")
        return run

    async def wait(self, run_id: str) -> WorkflowRun:
        """Wait for a run to finish and return it."""
        handle = self._handles.get(run_id)
        if handle is None:
            raise KeyError(run_id)
        try:
            await handle.result()
        except asyncio.CancelledError:
            if not handle.done():
                raise
        return self._runs[run_id]

    def cancel(self, run_id: str) -> Optional[WorkflowRun]:
        handle = self._handles.get(run_id)
        if handle is None:
            return None
        handle.cancel()
        return self._runs[run_id]

    def get_run(self, run_id: str) -> Optional[WorkflowRun]:
        return self._runs.get(run_id)

    def get_handle(self, run_id: str) -> Optional[JobHandle]:
        return self._handles.get(run_id)

    def list_runs(self) -> List[WorkflowRun]:
        return sorted(self._runs.values(), key=lambda r: r.created_at, reverse=True)

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def gather_diagnostics(
        self,
        bundle_file: Optional[Path] = None,
        data_set: Optional[Sequence[Data]] = None,
        monitor: Optional[ProgressMonitor] = None,
    ) -> BundleReport:
        """Write a diagnostic bundle about this controller. Raises BundleError."""
        if bundle_file is None:
            stamp = datetime.utcnow().strftime("%Y%m%d-%H%M%S")
            bundle_file = self.settings.bundle_dir / f"problem-report-{stamp}.zip"
        context = DiagnosticContext(settings=self.settings, workspace=self.workspace, runs=self.list_runs)
        return DiagnosticBundler(context).gather(bundle_file, data_set, monitor)

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        await self.import_scheduler.shutdown()
