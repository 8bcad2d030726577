"""Storage abstraction the converters read their input through.

The core never assumes a local filesystem: converters only see the
``read``/``list`` capability below.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

from pagemark.exceptions import IoError


@dataclass(frozen=True)
class StorageEntry:
    path: str
    is_dir: bool = False


class Storage(Protocol):
    """Read-only byte store keyed by logical path."""

    async def read(self, path: str) -> bytes: ...

    async def list(self, path: str) -> list[StorageEntry]: ...


class LocalFileStorage:
    """Storage backed by the local filesystem, optionally rooted at a directory."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root) if root is not None else None

    def _resolve(self, path: str) -> Path:
        return self.root / path if self.root is not None else Path(path)

    async def read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            raise IoError(f"Failed to read {path}: {e}") from e

    async def list(self, path: str = "") -> list[StorageEntry]:
        """
        List every file and directory below ``path``, recursively.

        Paths are returned relative to the storage root in sorted order, with
        forward slashes, so results are stable across platforms.
        """
        base = self._resolve(path)
        try:
            children = await asyncio.to_thread(lambda: sorted(base.rglob("*")))
        except OSError as e:
            raise IoError(f"Failed to list {path}: {e}") from e

        anchor = self.root if self.root is not None else base
        return [
            StorageEntry(path=child.relative_to(anchor).as_posix(), is_dir=child.is_dir())
            for child in children
        ]


class InMemoryStorage:
    """Storage over an in-memory mapping of path to bytes."""

    def __init__(self, files: dict[str, bytes] | None = None):
        self.files = dict(files or {})

    async def read(self, path: str) -> bytes:
        try:
            return self.files[path]
        except KeyError:
            raise IoError(f"No such entry: {path}") from None

    async def list(self, path: str = "") -> list[StorageEntry]:
        prefix = path.rstrip("/") + "/" if path else ""
        return [
            StorageEntry(path=name) for name in sorted(self.files) if name.startswith(prefix)
        ]


@dataclass(frozen=True)
class SourceHandle:
    """A logical path together with the storage it lives in."""

    storage: Storage
    path: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.path.replace("\\", "/")).name
