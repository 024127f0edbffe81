"""
Status records for best-effort batch operations.

A StatusRecord is a non-fatal failure captured while a run keeps going.
Records are frozen and only ever appended to the StatusLog owned by one run
(a checkout workflow or a diagnostic bundle).
"""

import logging
import threading
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger("checkout_status")


class Severity(str, Enum):
    """Status severity, ordered from least to most severe."""
    OK = "ok"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CANCEL = "cancel"

    @property
    def log_level(self) -> int:
        return {
            Severity.OK: logging.DEBUG,
            Severity.INFO: logging.INFO,
            Severity.WARNING: logging.WARNING,
            Severity.ERROR: logging.ERROR,
            Severity.CANCEL: logging.INFO,
        }[self]


@dataclass(frozen=True)
class StatusRecord:
    """A single captured failure or notice."""
    severity: Severity
    source: str
    message: str
    cause: Optional[BaseException] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def error(cls, source: str, message: str, cause: Optional[BaseException] = None) -> "StatusRecord":
        return cls(Severity.ERROR, source, message, cause)

    @classmethod
    def warning(cls, source: str, message: str, cause: Optional[BaseException] = None) -> "StatusRecord":
        return cls(Severity.WARNING, source, message, cause)

    def cause_trace(self) -> Optional[str]:
        if self.cause is None:
            return None
        return "".join(
            traceback.format_exception(type(self.cause), self.cause, self.cause.__traceback__)
        )

    def to_text(self) -> str:
        """Plain-text form used for status-N.txt bundle entries."""
        lines = [
            f"Severity: {self.severity.value.upper()}",
            f"Source: {self.source}",
            f"Time: {self.created_at.isoformat()}",
            f"Message: {self.message}",
        ]
        trace = self.cause_trace()
        if trace:
            lines.append("")
            lines.append("Cause:")
            lines.append(trace.rstrip())
        return "\n".join(lines) + "\n"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "source": self.source,
            "message": self.message,
            "cause": repr(self.cause) if self.cause is not None else None,
            "created_at": self.created_at.isoformat(),
        }


class StatusLog:
    """
    Ordered, append-only collection of status records for one run.

    Each run constructs its own log and passes it explicitly to the stages
    that may record into it.
    """

    def __init__(self):
        self._records: List[StatusRecord] = []
        self._lock = threading.Lock()

    def add(self, record: StatusRecord) -> StatusRecord:
        with self._lock:
            self._records.append(record)
        logger.log(record.severity.log_level, f"[{record.source}] {record.message}")
        return record

    def error(self, source: str, message: str, cause: Optional[BaseException] = None) -> StatusRecord:
        return self.add(StatusRecord.error(source, message, cause))

    def warning(self, source: str, message: str, cause: Optional[BaseException] = None) -> StatusRecord:
        return self.add(StatusRecord.warning(source, message, cause))

    def cancelled(self, source: str, message: str) -> StatusRecord:
        return self.add(StatusRecord(Severity.CANCEL, source, message))

    @property
    def records(self) -> Tuple[StatusRecord, ...]:
        with self._lock:
            return tuple(self._records)

    @property
    def max_severity(self) -> Severity:
        order = list(Severity)
        worst = Severity.OK
        for record in self.records:
            if order.index(record.severity) > order.index(worst):
                worst = record.severity
        return worst

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[StatusRecord]:
        return iter(self.records)

    def to_list(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.records]
