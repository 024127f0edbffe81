"""
Pytest configuration for checkout controller tests.

This module provides:
1. A fake source-control client that materialises folders on disk
2. Workspace and workflow fixtures on temporary directories
3. Test session configuration
"""

from pathlib import Path
from typing import Dict, Iterable, Optional, Union

import pytest

from checkout_controller.errors import CheckoutError
from checkout_controller.importer import ProjectImporter
from checkout_controller.jobs import JobScheduler
from checkout_controller.manifest import write_model
from checkout_controller.models import ProjectModel
from checkout_controller.workflow import CheckoutWorkflow
from checkout_controller.workspace import WorkspaceRegistry

Layout = Dict[str, Union[str, ProjectModel]]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def model(artifact: str, group: str = "org.example", version: str = "1.0.0", **kwargs) -> ProjectModel:
    """Shorthand for a ProjectModel."""
    return ProjectModel(artifact=artifact, group=group, version=version, **kwargs)


def materialise(target: Path, layout: Layout) -> None:
    """Write a layout of relative path -> text or ProjectModel under target."""
    target.mkdir(parents=True, exist_ok=True)
    for relative, content in layout.items():
        path = target / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, ProjectModel):
            write_model(path, content)
        else:
            path.write_text(content)


class FakeCheckoutClient:
    """
    Source-control client that writes a preset layout per location.

    Locations without a layout get a single README.md. Locations in `fail`
    raise CheckoutError. `before_checkout` runs before every call.
    """

    def __init__(self, layouts: Optional[Dict[str, Layout]] = None, fail: Iterable[str] = ()):
        self.layouts = layouts or {}
        self.fail = set(fail)
        self.calls = []
        self.before_checkout = None

    async def checkout(self, location: str, target: Path) -> Path:
        self.calls.append(location)
        if self.before_checkout is not None:
            self.before_checkout(location)
        if location in self.fail:
            raise CheckoutError(f"Can't reach {location}")
        materialise(target, self.layouts.get(location, {"README.md": "sources\n"}))
        return target


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def checkout_root(tmp_path) -> Path:
    root = tmp_path / "checkouts"
    root.mkdir()
    return root


@pytest.fixture
def workspace(tmp_path) -> WorkspaceRegistry:
    return WorkspaceRegistry(tmp_path / "workspace" / "projects.json")


@pytest.fixture
def fake_client() -> FakeCheckoutClient:
    return FakeCheckoutClient()


@pytest.fixture
def workflow(fake_client, workspace) -> CheckoutWorkflow:
    return CheckoutWorkflow(
        fake_client,
        workspace,
        ProjectImporter(workspace),
        JobScheduler(max_concurrent=1),
    )


# -----------------------------------------------------------------------------
# Session Configuration
# -----------------------------------------------------------------------------
def pytest_configure(config):
    """Configure pytest session."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async (run by pytest-asyncio)"
    )
