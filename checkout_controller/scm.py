"""
Source-control clients.

A client fetches one remote location into one local folder:

    await client.checkout(location, target) -> Path

Clients raise CheckoutError on any failure. They are not interrupted by
cancellation; the checkout operation checks for cancellation between calls.
"""

import asyncio
import io
import logging
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Optional, Protocol

import httpx

from .errors import CheckoutError

logger = logging.getLogger("checkout_scm")

ARCHIVE_SUFFIXES = (".zip", ".tar.gz", ".tgz", ".tar")


class SourceControlClient(Protocol):
    async def checkout(self, location: str, target: Path) -> Path:
        ...


# -----------------------------------------------------------------------------
# Git
# -----------------------------------------------------------------------------
class GitCheckoutClient:
    """Clone with the git command line."""

    def __init__(self, timeout: int = 300, depth: Optional[int] = 1, git: str = "git"):
        self.timeout = timeout
        self.depth = depth
        self.git = git

    async def checkout(self, location: str, target: Path) -> Path:
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)

        args = [self.git, "clone", "--quiet"]
        if self.depth:
            args += ["--depth", str(self.depth)]
        args += [location, str(target)]

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CheckoutError(f"Can't run {self.git}", cause=e) from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise CheckoutError(
                f"Git clone of {location} timed out after {self.timeout}s", cause=e
            ) from e

        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip()[:500]
            raise CheckoutError(f"Git clone of {location} failed: {message}")

        logger.info(f"Cloned {location} to {target}")
        return target


# -----------------------------------------------------------------------------
# Archives
# -----------------------------------------------------------------------------
class ArchiveCheckoutClient:
    """Download a zip or tar archive over HTTP and unpack it."""

    def __init__(self, timeout: int = 300, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    async def checkout(self, location: str, target: Path) -> Path:
        target = Path(target)
        try:
            if self._client is not None:
                payload = await self._download(self._client, location)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    payload = await self._download(client, location)
        except httpx.HTTPError as e:
            raise CheckoutError(f"Download of {location} failed: {e}", cause=e) from e

        try:
            await asyncio.to_thread(unpack_archive, location, payload, target)
        except (OSError, zipfile.BadZipFile, tarfile.TarError, ValueError) as e:
            shutil.rmtree(target, ignore_errors=True)
            raise CheckoutError(f"Can't unpack {location}: {e}", cause=e) from e

        logger.info(f"Unpacked {location} to {target} ({len(payload)} bytes)")
        return target

    @staticmethod
    async def _download(client: httpx.AsyncClient, location: str) -> bytes:
        response = await client.get(location)
        response.raise_for_status()
        return response.content


def unpack_archive(name: str, payload: bytes, target: Path) -> None:
    """
    Unpack an archive into target.

    A single top-level folder (as produced by hosted "download archive"
    links) is stripped. Entries escaping target are rejected.
    """
    target = Path(target)
    target.mkdir(parents=True, exist_ok=True)
    root = target.resolve()

    if name.lower().split("?", 1)[0].endswith(".zip"):
        with zipfile.ZipFile(io.BytesIO(payload)) as archive:
            members = [m for m in archive.namelist() if not m.endswith("/")]
            prefix = _common_prefix(members)
            for member in members:
                destination = _safe_destination(root, member[len(prefix):])
                destination.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member) as src, open(destination, "wb") as dst:
                    shutil.copyfileobj(src, dst)
    else:
        with tarfile.open(fileobj=io.BytesIO(payload), mode="r:*") as archive:
            members = [m for m in archive.getmembers() if m.isfile()]
            prefix = _common_prefix([m.name for m in members])
            for member in members:
                destination = _safe_destination(root, member.name[len(prefix):])
                destination.parent.mkdir(parents=True, exist_ok=True)
                src = archive.extractfile(member)
                if src is None:
                    continue
                with src, open(destination, "wb") as dst:
                    shutil.copyfileobj(src, dst)


def _common_prefix(names) -> str:
    tops = {n.split("/", 1)[0] for n in names}
    if len(tops) == 1 and all("/" in n for n in names):
        return tops.pop() + "/"
    return ""


def _safe_destination(root: Path, relative: str) -> Path:
    destination = (root / relative).resolve()
    if root != destination and root not in destination.parents:
        raise ValueError(f"Archive entry escapes target: {relative}")
    return destination


# -----------------------------------------------------------------------------
# Dispatch
# -----------------------------------------------------------------------------
class DefaultCheckoutClient:
    """Archives over HTTP go to the archive client, everything else to git."""

    def __init__(self, git: GitCheckoutClient, archive: ArchiveCheckoutClient):
        self.git = git
        self.archive = archive

    @classmethod
    def from_settings(cls, settings) -> "DefaultCheckoutClient":
        return cls(
            GitCheckoutClient(timeout=settings.checkout_timeout, depth=settings.git_depth),
            ArchiveCheckoutClient(timeout=settings.checkout_timeout),
        )

    async def checkout(self, location: str, target: Path) -> Path:
        if is_archive_location(location):
            return await self.archive.checkout(location, target)
        return await self.git.checkout(location, target)


def is_archive_location(location: str) -> bool:
    lowered = location.lower().split("?", 1)[0]
    return lowered.startswith(("http://", "https://")) and lowered.endswith(ARCHIVE_SUFFIXES)
