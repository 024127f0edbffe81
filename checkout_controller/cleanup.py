"""
Best-effort removal of checkout locations.

Failures are logged and recorded, never raised. A location that is already
gone is skipped, so calling cleanup twice on the same list is harmless.
"""

import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import CleanupError
from .status import StatusLog

logger = logging.getLogger("checkout_cleanup")


def cleanup(locations: Iterable[Path], status_log: Optional[StatusLog] = None) -> List[Path]:
    """
    Delete every location in the list.

    Returns the locations that were actually removed by this call.
    """
    removed: List[Path] = []
    for location in locations:
        location = Path(location)
        try:
            if not location.exists() and not location.is_symlink():
                logger.debug(f"Nothing to delete at {location}")
                continue
            if location.is_dir() and not location.is_symlink():
                shutil.rmtree(location)
            else:
                location.unlink()
            removed.append(location)
            logger.info(f"Deleted checkout location {location}")
        except FileNotFoundError:
            logger.debug(f"{location} disappeared during cleanup")
        except OSError as e:
            error = CleanupError(location, e)
            logger.error(f"{error.message}; {e.strerror or e}")
            if status_log is not None:
                status_log.warning("cleanup", error.message, e)
    return removed
