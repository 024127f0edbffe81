"""
Data sources and targets for diagnostic bundles.

A DataSource is a named blob; a target consumes sources into folders. The
ArchiveTarget writes straight into a zip file, a StagingTarget keeps entries
in memory until they are committed to another target.
"""

import json
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Protocol, Tuple

from .status import StatusRecord

logger = logging.getLogger("checkout_sources")


class DataSource(Protocol):
    name: str

    def open(self) -> bytes:
        ...


class GatherTarget(Protocol):
    def consume(self, folder: str, source: DataSource) -> None:
        ...


# -----------------------------------------------------------------------------
# Sources
# -----------------------------------------------------------------------------
@dataclass
class BytesSource:
    name: str
    data: bytes

    def open(self) -> bytes:
        return self.data


@dataclass
class TextSource:
    name: str
    text: str

    def open(self) -> bytes:
        return self.text.encode("utf-8")


@dataclass
class JsonSource:
    name: str
    payload: Any

    def open(self) -> bytes:
        return json.dumps(self.payload, indent=2, default=str).encode("utf-8")


class FileSource:
    """A file on disk, read when the source is consumed."""

    def __init__(self, path: Path, name: Optional[str] = None):
        self.path = Path(path)
        self.name = name or self.path.name

    def open(self) -> bytes:
        return self.path.read_bytes()


class StatusSource:
    """Text rendering of a StatusRecord."""

    def __init__(self, status: StatusRecord, name: str):
        self.status = status
        self.name = name

    def open(self) -> bytes:
        return self.status.to_text().encode("utf-8")


# -----------------------------------------------------------------------------
# Targets
# -----------------------------------------------------------------------------
class ArchiveTarget:
    """Writes each consumed source as folder/name into an open zip file."""

    def __init__(self, zip_file: zipfile.ZipFile):
        self.zip_file = zip_file
        self.entries: List[str] = []

    def consume(self, folder: str, source: DataSource) -> None:
        self.write(folder, source.name, source.open())

    def write(self, folder: str, name: str, data: bytes) -> None:
        entry = f"{folder.strip('/')}/{name}" if folder else name
        self.zip_file.writestr(entry, data)
        self.entries.append(entry)

    def close(self) -> None:
        self.zip_file.close()


class StagingTarget:
    """
    In-memory buffer for one unit of gathering.

    Sources are read as soon as they are consumed, so a failing source
    fails the consume call and not the later commit.
    """

    def __init__(self):
        self.entries: List[Tuple[str, str, bytes]] = []

    def consume(self, folder: str, source: DataSource) -> None:
        self.entries.append((folder, source.name, source.open()))

    def commit(self, target: ArchiveTarget) -> None:
        for folder, name, data in self.entries:
            target.write(folder, name, data)
        self.entries = []
