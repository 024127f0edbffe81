"""
Pluggable diagnostic gatherers.

A gatherer adds its own files to a diagnostic bundle. Gatherers are kept in
a process-wide registry; register_gatherer() adds one, get_gatherers()
returns them in registration order. Raising GatherError from gather()
records the error's status in the bundle, any other exception is recorded as
a generic gathering failure.
"""

import importlib.metadata
import logging
import os
import platform
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil

from .errors import GatherError
from .progress import ProgressMonitor
from .sources import DataSource, GatherTarget, JsonSource, TextSource
from .status import StatusRecord

logger = logging.getLogger("checkout_gatherers")


@dataclass
class GatheringContext:
    """What a gatherer sees: the target, the monitor and the bundler's context."""
    target: GatherTarget
    monitor: ProgressMonitor
    bundler: Any

    @property
    def settings(self):
        return getattr(self.bundler.context, "settings", None)

    @property
    def workspace(self):
        return getattr(self.bundler.context, "workspace", None)

    def consume(self, folder: str, source: DataSource) -> bool:
        """Add one entry; a failing entry is recorded instead of raised."""
        return self.bundler.consume(folder, self.target, source)


class DataGatherer:
    name = "gatherer"

    def gather(self, context: GatheringContext) -> None:
        raise NotImplementedError


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------
_GATHERERS: List[DataGatherer] = []


def register_gatherer(gatherer):
    """Register a gatherer instance, or a gatherer class (used as decorator)."""
    instance = gatherer() if isinstance(gatherer, type) else gatherer
    if any(g.name == instance.name for g in _GATHERERS):
        raise ValueError(f"Gatherer already registered: {instance.name}")
    _GATHERERS.append(instance)
    logger.debug(f"Registered gatherer {instance.name}")
    return gatherer


def unregister_gatherer(name: str) -> bool:
    for gatherer in list(_GATHERERS):
        if gatherer.name == name:
            _GATHERERS.remove(gatherer)
            return True
    return False


def get_gatherers() -> List[DataGatherer]:
    return list(_GATHERERS)


# -----------------------------------------------------------------------------
# Built-in Gatherers
# -----------------------------------------------------------------------------
@register_gatherer
class SystemInfoGatherer(DataGatherer):
    """Host resources as seen by psutil."""
    name = "system"

    def gather(self, context: GatheringContext) -> None:
        memory = psutil.virtual_memory()
        info: Dict[str, Any] = {
            "collected_at": datetime.utcnow().isoformat(),
            "platform": platform.platform(),
            "cpu_count": psutil.cpu_count(),
            "cpu_percent": psutil.cpu_percent(interval=0.1),
            "memory_total_mb": memory.total / (1024 * 1024),
            "memory_available_mb": memory.available / (1024 * 1024),
            "memory_percent": memory.percent,
            "boot_time": datetime.fromtimestamp(psutil.boot_time()).isoformat(),
        }

        root = _checkout_root(context)
        if root is not None and root.exists():
            disk = psutil.disk_usage(str(root))
            info["checkout_disk"] = {
                "path": str(root),
                "percent": disk.percent,
                "free_gb": disk.free / (1024 * 1024 * 1024),
            }

        context.consume("system", JsonSource("system.json", info))


@register_gatherer
class EnvironmentGatherer(DataGatherer):
    """Interpreter and installed distributions."""
    name = "environment"

    def gather(self, context: GatheringContext) -> None:
        distributions = sorted(
            f"{d.metadata['Name']}=={d.version}" for d in importlib.metadata.distributions()
            if d.metadata["Name"]
        )
        context.consume("system", JsonSource("python.json", {
            "version": sys.version,
            "executable": sys.executable,
            "implementation": platform.python_implementation(),
            "cwd": os.getcwd(),
        }))
        context.consume("system", TextSource("packages.txt", "\n".join(distributions) + "\n"))


@register_gatherer
class CheckoutRootGatherer(DataGatherer):
    """Listing of the checkout root, two levels deep."""
    name = "checkouts"

    def gather(self, context: GatheringContext) -> None:
        root = _checkout_root(context)
        if root is None:
            raise GatherError(StatusRecord.warning(self.name, "No checkout root configured"))
        if not root.exists():
            raise GatherError(StatusRecord.warning(self.name, f"Checkout root does not exist: {root}"))

        lines = [str(root)]
        for child in sorted(root.iterdir()):
            lines.append(f"  {child.name}{'/' if child.is_dir() else ''}")
            if child.is_dir():
                for grandchild in sorted(child.iterdir()):
                    lines.append(f"    {grandchild.name}{'/' if grandchild.is_dir() else ''}")
        context.consume("checkouts", TextSource("listing.txt", "\n".join(lines) + "\n"))


def _checkout_root(context: GatheringContext) -> Optional[Path]:
    settings = context.settings
    if settings is None:
        return None
    return Path(settings.checkout_root)
