"""
Import coordinator.

Carries out a Decision: asks the interaction capability where a question is
needed, submits the import job, creates a project for sources without one, or
cleans up. Every branch ends in a WorkflowOutcome.

Rejecting or cancelling a dialog, and cancelling the run while a dialog is
pending, all lead to cleanup of every recorded checkout location. A failed
import leaves the sources on disk.
"""

import asyncio
import dataclasses
import logging
import shutil
from pathlib import Path
from typing import Any, Awaitable, List, Optional, Sequence

from .cleanup import cleanup
from .config import ProjectImportConfiguration
from .decision import Decision, DecisionKind
from .errors import CheckoutControllerError, ProjectImportError
from .importer import ImportSummary, ProjectImporter
from .interaction import Interaction
from .jobs import JobScheduler
from .models import CheckoutResult, ProjectDescriptor, WorkflowOutcome
from .progress import ProgressMonitor
from .scanner import collect_projects
from .status import StatusLog
from .workspace import WorkspaceRegistry

logger = logging.getLogger("checkout_coordinator")

IMPORT_JOB_NAME = "Importing projects"

ALTERNATE_IMPORT_TITLE = "Project Import"
ALTERNATE_IMPORT_MESSAGE = (
    "No projects were found in the checkout, but there are existing project "
    "configurations available.\nDo you want to select and import existing projects?"
)
NEW_PROJECT_TITLE = "New Project"
NEW_PROJECT_MESSAGE = (
    "No projects were found in the checkout.\n"
    "Do you want to create a new project and place the checked out sources in it?"
)


class _Cancelled(Exception):
    """The run was cancelled while waiting for an answer."""


class ImportCoordinator:
    """Executes the branch chosen by the ImportDecisionEngine for one run."""

    def __init__(
        self,
        interaction: Interaction,
        importer: ProjectImporter,
        workspace: WorkspaceRegistry,
        import_scheduler: JobScheduler,
        status_log: StatusLog,
        monitor: Optional[ProgressMonitor] = None,
    ):
        self.interaction = interaction
        self.importer = importer
        self.workspace = workspace
        self.import_scheduler = import_scheduler
        self.status_log = status_log
        self.monitor = monitor or ProgressMonitor()
        self.import_job_id: Optional[str] = None

    async def execute(
        self,
        decision: Decision,
        result: CheckoutResult,
        descriptors: Sequence[ProjectDescriptor],
        configuration: ProjectImportConfiguration,
        markers: Sequence[Path] = (),
    ) -> WorkflowOutcome:
        locations = list(result.locations)
        configuration = dataclasses.replace(configuration, needs_rename=True)
        logger.info(f"Executing decision {decision.kind.value} for {len(locations)} location(s)")

        try:
            if decision.kind == DecisionKind.IMPORT_ALL:
                return await self._import(descriptors, configuration)

            if decision.kind == DecisionKind.SELECT:
                return await self._select(locations, descriptors, configuration)

            if decision.kind == DecisionKind.OFFER_ALTERNATE_IMPORT:
                return await self._offer_alternate_import(locations, decision.location, markers)

            if decision.kind == DecisionKind.OFFER_NEW_PROJECT:
                return await self._offer_new_project(locations, decision.location)

            self._cleanup(locations)
            return WorkflowOutcome.completed(0, message=decision.reason or "No projects to import",
                                             cleaned_up=True)
        except _Cancelled:
            logger.info("Run cancelled while waiting for an answer")
            self._cleanup(locations)
            return WorkflowOutcome.cancelled(cleaned_up=True)
        except asyncio.CancelledError:
            if self.import_job_id is None:
                self._cleanup(locations)
            raise

    # -------------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------------

    async def _select(
        self,
        locations: List[Path],
        descriptors: Sequence[ProjectDescriptor],
        configuration: ProjectImportConfiguration,
    ) -> WorkflowOutcome:
        selection = await self._ask(self.interaction.select_projects(locations, descriptors, configuration))
        if not selection.proceed:
            logger.info("Project selection cancelled")
            self._cleanup(locations)
            return WorkflowOutcome.cancelled(cleaned_up=True)
        return await self._import(selection.projects, configuration)

    async def _offer_alternate_import(
        self,
        locations: List[Path],
        location: Optional[Path],
        markers: Sequence[Path],
    ) -> WorkflowOutcome:
        if not await self._ask(self.interaction.confirm(ALTERNATE_IMPORT_TITLE, ALTERNATE_IMPORT_MESSAGE)):
            self._cleanup(locations)
            return WorkflowOutcome.cancelled(cleaned_up=True)

        selection = await self._ask(self.interaction.import_existing_projects(location, markers))
        if not selection.proceed:
            logger.info("Import of existing projects cancelled")
            self._cleanup(locations)
            return WorkflowOutcome.cancelled(cleaned_up=True)
        return WorkflowOutcome.completed(selection.imported_count,
                                         message=f"Imported {selection.imported_count} existing project(s)")

    async def _offer_new_project(self, locations: List[Path], location: Optional[Path]) -> WorkflowOutcome:
        if not await self._ask(self.interaction.confirm(NEW_PROJECT_TITLE, NEW_PROJECT_MESSAGE)):
            self._cleanup(locations)
            return WorkflowOutcome.cancelled(cleaned_up=True)

        try:
            project = create_project_from_sources(self.workspace, Path(location))
        except (CheckoutControllerError, OSError) as e:
            logger.error(f"Failed to create a project for {location}: {e}")
            self.status_log.error("coordinator", f"Failed to create a project for {location}", e)
            return WorkflowOutcome.failed(e)
        return WorkflowOutcome.completed(1, message=f"Created project {project.name}")

    async def _import(
        self,
        descriptors: Sequence[ProjectDescriptor],
        configuration: ProjectImportConfiguration,
    ) -> WorkflowOutcome:
        projects = collect_projects(descriptors, configuration.include_modules)
        if not projects:
            return WorkflowOutcome.completed(0, message="No projects selected")

        async def run_import(monitor: ProgressMonitor) -> ImportSummary:
            return await asyncio.to_thread(self.importer.import_projects, projects, configuration, monitor)

        handle = self.import_scheduler.submit(IMPORT_JOB_NAME, run_import)
        self.import_job_id = handle.job_id
        try:
            summary = await handle.result()
        except ProjectImportError as e:
            self.status_log.error("importer", e.message, e)
            return WorkflowOutcome.failed(e)
        except asyncio.CancelledError:
            if handle.done():
                return WorkflowOutcome.cancelled()
            raise
        except Exception as e:
            logger.error(f"Import job failed: {e}")
            self.status_log.error("importer", "Import job failed", e)
            return WorkflowOutcome.failed(e)
        return WorkflowOutcome.completed(summary.count, message=f"Imported {summary.count} project(s)")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _cleanup(self, locations: List[Path]) -> None:
        cleanup(locations, self.status_log)

    async def _ask(self, question: Awaitable[Any]) -> Any:
        """
        Wait for an answer, or raise _Cancelled if the run is cancelled first.
        The pending question is withdrawn on cancel.
        """
        if self.monitor.is_cancelled:
            if asyncio.iscoroutine(question):
                question.close()
            raise _Cancelled()

        loop = asyncio.get_running_loop()
        answer = asyncio.ensure_future(question)
        cancelled = loop.create_future()

        def on_cancel() -> None:
            loop.call_soon_threadsafe(_settle, cancelled)

        self.monitor.add_cancel_listener(on_cancel)
        try:
            await asyncio.wait({answer, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            answer.cancel()
            raise
        finally:
            self.monitor.remove_cancel_listener(on_cancel)
            if not cancelled.done():
                cancelled.cancel()

        if answer.done():
            return answer.result()

        answer.cancel()
        try:
            await answer
        except asyncio.CancelledError:
            pass
        raise _Cancelled()


def _settle(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(True)


def create_project_from_sources(workspace: WorkspaceRegistry, location: Path):
    """
    Create a workspace project named after a checkout folder and move the
    folder's contents into it. The emptied checkout folder is removed.
    """
    name = workspace.unique_name(location.name)
    project = workspace.create(name, description=f"Created from {location.name}")
    target = project.path

    if target.resolve() != location.resolve():
        for child in sorted(location.iterdir()):
            shutil.move(str(child), str(target / child.name))
        location.rmdir()
        logger.info(f"Moved sources from {location} to {target}")
    return project
