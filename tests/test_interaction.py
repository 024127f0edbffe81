"""
Tests for the interaction capability.

Tests covering:
- Scripted answers
- Prompts posted to the queue and answered by message
"""

import asyncio
from pathlib import Path

import pytest

from checkout_controller.config import ProjectImportConfiguration
from checkout_controller.interaction import (
    InteractionDecision,
    PromptKind,
    PromptQueue,
    ScriptedInteraction,
    UnknownPromptError,
)
from checkout_controller.models import ProjectDescriptor


def descriptors():
    return [ProjectDescriptor(Path(f"/co/p{i}/project.yaml")) for i in range(3)]


async def next_prompt(queue, run_id=None):
    for _ in range(100):
        pending = queue.pending(run_id)
        if pending:
            return pending[0]
        await asyncio.sleep(0.01)
    raise AssertionError("no prompt posted")


class TestScriptedInteraction:
    """Tests for ScriptedInteraction."""

    @pytest.mark.asyncio
    async def test_defaults_proceed_with_everything(self):
        interaction = ScriptedInteraction()
        projects = descriptors()

        assert await interaction.confirm("Title", "Message")
        selection = await interaction.select_projects([Path("/co")], projects, ProjectImportConfiguration())

        assert selection.proceed
        assert selection.projects == projects
        assert [q["kind"] for q in interaction.asked] == ["confirm", "select"]

    @pytest.mark.asyncio
    async def test_cancel_selection(self):
        interaction = ScriptedInteraction(cancel_selection=True)

        selection = await interaction.select_projects([], descriptors(), ProjectImportConfiguration())

        assert selection.decision == InteractionDecision.CANCELLED

    @pytest.mark.asyncio
    async def test_existing_projects(self):
        interaction = ScriptedInteraction(existing_imported=2)

        selection = await interaction.import_existing_projects(Path("/co"), [Path("/co/.project")])

        assert selection.proceed
        assert selection.imported_count == 2


class TestPromptQueue:
    """Tests for PromptQueue and PromptChannel."""

    @pytest.mark.asyncio
    async def test_confirm_answered(self):
        queue = PromptQueue()
        channel = queue.for_run("run-1")

        task = asyncio.create_task(channel.confirm("New Project", "Create it?"))
        prompt = await next_prompt(queue, "run-1")
        assert prompt.kind == PromptKind.CONFIRM
        assert prompt.title == "New Project"

        queue.answer(prompt.prompt_id, {"proceed": False})

        assert await task is False
        assert queue.pending() == []

    @pytest.mark.asyncio
    async def test_confirm_without_proceed_is_no(self):
        queue = PromptQueue()
        channel = queue.for_run("run-1")

        task = asyncio.create_task(channel.confirm("New Project", "Create it?"))
        prompt = await next_prompt(queue, "run-1")
        queue.answer(prompt.prompt_id, {"selected": ["anything"]})

        assert await task is False

    @pytest.mark.asyncio
    async def test_selection_by_manifest(self):
        queue = PromptQueue()
        channel = queue.for_run("run-1")
        projects = descriptors()

        task = asyncio.create_task(channel.select_projects([Path("/co")], projects, ProjectImportConfiguration()))
        prompt = await next_prompt(queue)
        assert len(prompt.options) == 3

        queue.answer(prompt.prompt_id, {"proceed": True, "selected": [str(projects[2].manifest),
                                                                      str(projects[0].location)]})
        selection = await task

        assert selection.proceed
        assert selection.projects == [projects[0], projects[2]]

    @pytest.mark.asyncio
    async def test_selection_cancelled(self):
        queue = PromptQueue()
        task = asyncio.create_task(queue.for_run("r").select_projects([], descriptors(), ProjectImportConfiguration()))
        prompt = await next_prompt(queue)

        queue.answer(prompt.prompt_id, {"proceed": False})

        assert not (await task).proceed

    @pytest.mark.asyncio
    async def test_answer_from_another_thread(self):
        queue = PromptQueue()
        task = asyncio.create_task(queue.for_run("r").confirm("t", "m"))
        prompt = await next_prompt(queue)

        await asyncio.to_thread(queue.answer, prompt.prompt_id, {"proceed": True})

        assert await task is True

    @pytest.mark.asyncio
    async def test_withdrawn_prompt(self):
        """Test that a cancelled question leaves no pending prompt."""
        queue = PromptQueue()
        task = asyncio.create_task(queue.for_run("r").confirm("t", "m"))
        prompt = await next_prompt(queue)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert queue.pending() == []
        with pytest.raises(UnknownPromptError):
            queue.answer(prompt.prompt_id, {"proceed": True})

    def test_unknown_prompt(self):
        with pytest.raises(UnknownPromptError):
            PromptQueue().answer("missing", {"proceed": True})
