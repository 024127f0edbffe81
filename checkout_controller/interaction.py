"""
Interaction capability.

The workflow never talks to a UI directly. It awaits one of three questions
and gets back an explicit answer:

    await confirm(title, message) -> bool
    await select_projects(locations, projects, configuration) -> Selection
    await import_existing_projects(location, markers) -> Selection

Two implementations:

- ScriptedInteraction answers from preset values (headless runs, tests)
- PromptQueue posts each question as a pending Prompt and resolves it when an
  answer arrives (HTTP surface). Answers are marshalled onto the event loop
  that owns the prompt, whatever thread they come from.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union

from .config import ProjectImportConfiguration
from .models import ProjectDescriptor

logger = logging.getLogger("checkout_interaction")


class InteractionDecision(str, Enum):
    PROCEED = "proceed"
    CANCELLED = "cancelled"


@dataclass
class Selection:
    """Answer to a selection or alternate-import question."""
    decision: InteractionDecision
    projects: List[ProjectDescriptor] = field(default_factory=list)
    imported_count: int = 0

    @classmethod
    def cancelled(cls) -> "Selection":
        return cls(InteractionDecision.CANCELLED)

    @property
    def proceed(self) -> bool:
        return self.decision == InteractionDecision.PROCEED


class Interaction(Protocol):
    async def confirm(self, title: str, message: str) -> bool:
        ...

    async def select_projects(
        self,
        locations: Sequence[Path],
        projects: Sequence[ProjectDescriptor],
        configuration: ProjectImportConfiguration,
    ) -> Selection:
        ...

    async def import_existing_projects(self, location: Path, markers: Sequence[Path]) -> Selection:
        ...


# -----------------------------------------------------------------------------
# Scripted Interaction
# -----------------------------------------------------------------------------
ConfirmAnswer = Union[bool, Callable[[str, str], bool]]
SelectAnswer = Union[None, Callable[[Sequence[ProjectDescriptor]], Optional[List[ProjectDescriptor]]]]


class ScriptedInteraction:
    """
    Answers every question from preset values.

    select=None proceeds with every offered project; a callable returns the
    chosen subset or None to cancel. Every question asked is kept in `asked`.
    """

    def __init__(
        self,
        confirm: ConfirmAnswer = True,
        select: SelectAnswer = None,
        cancel_selection: bool = False,
        existing: InteractionDecision = InteractionDecision.PROCEED,
        existing_imported: int = 0,
    ):
        self._confirm = confirm
        self._select = select
        self._cancel_selection = cancel_selection
        self._existing = existing
        self._existing_imported = existing_imported
        self.asked: List[Dict[str, Any]] = []

    async def confirm(self, title: str, message: str) -> bool:
        self.asked.append({"kind": "confirm", "title": title, "message": message})
        if callable(self._confirm):
            return bool(self._confirm(title, message))
        return bool(self._confirm)

    async def select_projects(self, locations, projects, configuration) -> Selection:
        self.asked.append({
            "kind": "select",
            "locations": list(locations),
            "projects": list(projects),
        })
        if self._cancel_selection:
            return Selection.cancelled()
        chosen = list(projects) if self._select is None else self._select(projects)
        if chosen is None:
            return Selection.cancelled()
        return Selection(InteractionDecision.PROCEED, list(chosen))

    async def import_existing_projects(self, location, markers) -> Selection:
        self.asked.append({"kind": "import_existing", "location": location, "markers": list(markers)})
        return Selection(self._existing, imported_count=self._existing_imported)


# -----------------------------------------------------------------------------
# Prompt Queue
# -----------------------------------------------------------------------------
class PromptKind(str, Enum):
    CONFIRM = "confirm"
    SELECT_PROJECTS = "select_projects"
    IMPORT_EXISTING = "import_existing"


@dataclass
class Prompt:
    """A question waiting for an answer."""
    kind: PromptKind
    title: str
    message: str
    run_id: Optional[str] = None
    options: List[Dict[str, Any]] = field(default_factory=list)
    prompt_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)
    future: Optional[asyncio.Future] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_id": self.prompt_id,
            "run_id": self.run_id,
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "options": self.options,
            "created_at": self.created_at.isoformat(),
        }


class UnknownPromptError(KeyError):
    pass


class PromptQueue:
    """Pending prompts shared by all runs, answered by message passing."""

    def __init__(self):
        self._prompts: Dict[str, Prompt] = {}

    def for_run(self, run_id: str) -> "PromptChannel":
        return PromptChannel(self, run_id)

    def pending(self, run_id: Optional[str] = None) -> List[Prompt]:
        prompts = [p for p in self._prompts.values() if run_id is None or p.run_id == run_id]
        return sorted(prompts, key=lambda p: p.created_at)

    def get(self, prompt_id: str) -> Optional[Prompt]:
        return self._prompts.get(prompt_id)

    async def ask(self, prompt: Prompt) -> Any:
        """Post a prompt and wait for its answer. Blocks the caller, not the loop."""
        loop = asyncio.get_running_loop()
        prompt.future = loop.create_future()
        self._prompts[prompt.prompt_id] = prompt
        logger.info(f"Waiting for answer to '{prompt.title}' ({prompt.prompt_id})")
        try:
            return await prompt.future
        finally:
            self._prompts.pop(prompt.prompt_id, None)

    def answer(self, prompt_id: str, answer: Any) -> Prompt:
        """Deliver an answer. Safe to call from any thread."""
        prompt = self._prompts.get(prompt_id)
        if prompt is None or prompt.future is None:
            raise UnknownPromptError(prompt_id)
        loop = prompt.future.get_loop()

        def _resolve() -> None:
            if not prompt.future.done():
                prompt.future.set_result(answer)

        loop.call_soon_threadsafe(_resolve)
        logger.info(f"Answered prompt {prompt_id}")
        return prompt


class PromptChannel:
    """Interaction for one run, backed by the shared PromptQueue."""

    def __init__(self, queue: PromptQueue, run_id: str):
        self._queue = queue
        self.run_id = run_id

    async def confirm(self, title: str, message: str) -> bool:
        answer = await self._queue.ask(Prompt(PromptKind.CONFIRM, title, message, run_id=self.run_id))
        return bool(_field(answer, "proceed", False))

    async def select_projects(self, locations, projects, configuration) -> Selection:
        projects = list(projects)
        prompt = Prompt(
            PromptKind.SELECT_PROJECTS,
            "Import Projects",
            f"Select projects to import from {len(list(locations))} checkout location(s)",
            run_id=self.run_id,
            options=[p.to_dict() for p in projects],
        )
        answer = await self._queue.ask(prompt)
        if not _field(answer, "proceed", False):
            return Selection.cancelled()

        selected = _field(answer, "selected", None)
        if selected is None:
            return Selection(InteractionDecision.PROCEED, projects)
        wanted = {str(Path(s)) for s in selected}
        chosen = [p for p in projects if str(p.manifest) in wanted or str(p.location) in wanted]
        return Selection(InteractionDecision.PROCEED, chosen)

    async def import_existing_projects(self, location, markers) -> Selection:
        prompt = Prompt(
            PromptKind.IMPORT_EXISTING,
            "Import Existing Projects",
            f"Select and import existing projects from {location}",
            run_id=self.run_id,
            options=[{"marker": str(m)} for m in markers],
        )
        answer = await self._queue.ask(prompt)
        if not _field(answer, "proceed", False):
            return Selection.cancelled()
        return Selection(InteractionDecision.PROCEED, imported_count=int(_field(answer, "imported", 0)))


def _field(answer: Any, name: str, default: Any) -> Any:
    if isinstance(answer, dict):
        return answer.get(name, default)
    return default
