"""
Checkout operation.

Fetches every requested location into the destination root, one after the
other, through a source-control client. Cancellation is checked between
locations; a cancelled checkout returns what it produced so far and leaves it
on disk for the caller to clean up.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

from .errors import CheckoutError
from .models import CheckoutRequest, CheckoutResult
from .progress import ProgressMonitor
from .scm import SourceControlClient

logger = logging.getLogger("checkout_operation")

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class CheckoutOperation:
    """Drives a source-control client over a CheckoutRequest."""

    def __init__(self, client: SourceControlClient):
        self.client = client
        self._result = CheckoutResult()

    @property
    def locations(self):
        return list(self._result.locations)

    async def run(
        self,
        request: CheckoutRequest,
        monitor: Optional[ProgressMonitor] = None,
        result: Optional[CheckoutResult] = None,
    ) -> CheckoutResult:
        """
        Check out every location of the request.

        Produced locations are added to `result` as they arrive, so a caller
        holding it sees them even if the run is aborted mid-way. If the task
        is cancelled during a client call, the partially written target is
        recorded too.

        Raises CheckoutError if the client fails; the error carries the
        locations produced before the failure.
        """
        monitor = monitor or ProgressMonitor()
        self._result = result if result is not None else CheckoutResult()
        request.destination.mkdir(parents=True, exist_ok=True)

        for location in request.locations:
            if monitor.is_cancelled:
                logger.info(f"Checkout cancelled after {len(self._result.locations)} location(s)")
                self._result.cancelled = True
                return self._result

            target = target_folder(request.destination, location)
            monitor.subtask(f"Checking out {location}")
            try:
                produced = await self.client.checkout(location, target)
            except asyncio.CancelledError:
                if target.exists():
                    self._result.add(target)
                raise
            except CheckoutError as e:
                logger.error(f"Checkout of {location} failed: {e}")
                raise CheckoutError(e.message, cause=e.cause or e, locations=self.locations) from e
            except Exception as e:
                logger.error(f"Checkout of {location} failed: {e}")
                raise CheckoutError(f"Checkout of {location} failed", cause=e, locations=self.locations) from e

            self._result.add(produced or target)
            monitor.worked(1)

        if monitor.is_cancelled:
            self._result.cancelled = True
        return self._result


def target_folder(destination: Path, location: str) -> Path:
    """
    Local folder for a remote location.

    Named after the location's last path segment; a suffix is added when a
    non-empty folder of that name already exists.
    """
    segment = location.rstrip("/").split("?", 1)[0].rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    for suffix in (".git", ".zip", ".tar.gz", ".tgz", ".tar"):
        if segment.endswith(suffix):
            segment = segment[: -len(suffix)]
            break
    base = _UNSAFE.sub("-", segment).strip("-.") or "checkout"

    candidate = destination / base
    index = 1
    while candidate.exists() and (not candidate.is_dir() or any(candidate.iterdir())):
        candidate = destination / f"{base}-{index}"
        index += 1
    return candidate
