"""Filesystem backends for the cache, one per execution mode.

Every component that touches the disk takes a ``FileSystem`` in its
constructor instead of consulting process-wide flags.  Mutating
operations are recorded in an ``OperationLog`` so that a run can be
traced (REAL), previewed (SIMULATE) or asserted on in tests (TEST).

``SimulatedFileSystem`` reads the real disk but applies writes, links and
removals to an in-memory overlay, so a simulated run sees its own effects
and reports the same outcomes a real run would, without changing anything.
"""

from __future__ import annotations

import errno
import logging
import os
import tarfile
from collections import deque
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from labcache.models.config import ExecutionMode

logger = logging.getLogger(__name__)


def _raise_walk_error(exc: OSError) -> None:
    # os.walk skips unreadable directories unless told otherwise.
    raise exc


class FsOperation(BaseModel):
    """A single recorded filesystem operation."""

    model_config = ConfigDict(frozen=True)

    name: str
    args: tuple[str, ...] = ()

    def __str__(self) -> str:
        rendered = ", ".join(f'"{a}"' for a in self.args)
        return f"[FS] {self.name}({rendered})"


# Recent-history cap for REAL mode; simulated runs keep every entry.
REAL_MODE_HISTORY = 1024


class OperationLog:
    """Ordered record of filesystem operations.

    Parameters
    ----------
    mode:
        Controls whether recorded operations are also logged: at DEBUG for
        REAL, at INFO for SIMULATE, not at all for TEST.
    max_entries:
        Oldest entries are dropped beyond this many.  Defaults to
        ``REAL_MODE_HISTORY`` in REAL mode and unbounded otherwise.
    """

    def __init__(
        self,
        mode: ExecutionMode = ExecutionMode.REAL,
        max_entries: int | None = None,
    ) -> None:
        self._mode = mode
        if max_entries is None and mode == ExecutionMode.REAL:
            max_entries = REAL_MODE_HISTORY
        self._entries: deque[FsOperation] = deque(maxlen=max_entries)

    def record(self, name: str, *args: object) -> FsOperation:
        op = FsOperation(name=name, args=tuple(str(a) for a in args))
        self._entries.append(op)
        if self._mode == ExecutionMode.REAL:
            logger.debug("%s", op)
        elif self._mode == ExecutionMode.SIMULATE:
            logger.info("%s", op)
        return op

    @property
    def entries(self) -> list[FsOperation]:
        return list(self._entries)

    def lines(self) -> list[str]:
        return [str(op) for op in self._entries]

    def reset(self) -> None:
        self._entries.clear()

    def __iter__(self) -> Iterator[FsOperation]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


@runtime_checkable
class FileSystem(Protocol):
    """Filesystem operations used by the stage lock, corpus and stage cache."""

    @property
    def mode(self) -> ExecutionMode: ...

    @property
    def operations(self) -> OperationLog: ...

    def exists(self, path: Path) -> bool: ...

    def is_dir(self, path: Path) -> bool: ...

    def read_bytes(self, path: Path) -> bytes: ...

    def write_bytes(self, path: Path, data: bytes) -> None: ...

    def link(self, source: Path, destination: Path) -> None:
        """Create a hard link; fails if ``destination`` already exists."""
        ...

    def remove(self, path: Path) -> None: ...

    def mkdir(self, path: Path) -> None:
        """Create ``path`` and any missing parents."""
        ...

    def list_dir(self, path: Path) -> list[Path]: ...

    def walk_files(self, path: Path) -> list[Path]:
        """Every non-directory path beneath ``path``, recursively."""
        ...

    def glob(self, directory: Path, pattern: str) -> list[Path]: ...

    def extract_tarball(self, archive: Path, destination: Path) -> None: ...


# ---------------------------------------------------------------------------
# Real backend
# ---------------------------------------------------------------------------


class LocalFileSystem:
    """Performs every operation on the local disk."""

    def __init__(self, operations: OperationLog | None = None) -> None:
        self._ops = operations or OperationLog(ExecutionMode.REAL)

    @property
    def mode(self) -> ExecutionMode:
        return ExecutionMode.REAL

    @property
    def operations(self) -> OperationLog:
        return self._ops

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir()

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: Path, data: bytes) -> None:
        self._ops.record("write_bytes", path)
        with open(path, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())

    def link(self, source: Path, destination: Path) -> None:
        self._ops.record("link", source, destination)
        os.link(source, destination)

    def remove(self, path: Path) -> None:
        self._ops.record("remove", path)
        os.remove(path)

    def mkdir(self, path: Path) -> None:
        self._ops.record("mkdir", path)
        Path(path).mkdir(parents=True, exist_ok=True)

    def list_dir(self, path: Path) -> list[Path]:
        return sorted(Path(path).iterdir())

    def walk_files(self, path: Path) -> list[Path]:
        found: list[Path] = []
        for dirpath, _dirnames, filenames in os.walk(path, onerror=_raise_walk_error):
            found.extend(Path(dirpath) / f for f in filenames)
        return sorted(found)

    def glob(self, directory: Path, pattern: str) -> list[Path]:
        return sorted(Path(directory).glob(pattern))

    def extract_tarball(self, archive: Path, destination: Path) -> None:
        self._ops.record("extract_tarball", archive, destination)
        with tarfile.open(archive) as tar:
            tar.extractall(destination, filter="data")


# ---------------------------------------------------------------------------
# Simulated backend
# ---------------------------------------------------------------------------


class SimulatedFileSystem:
    """Reads the real disk; applies mutations to an in-memory overlay only.

    The overlay maps a path to its simulated content, or to ``None`` when
    the path was removed.  Extraction is recorded but not simulated.
    """

    def __init__(
        self,
        mode: ExecutionMode = ExecutionMode.SIMULATE,
        operations: OperationLog | None = None,
    ) -> None:
        if mode == ExecutionMode.REAL:
            raise ValueError("SimulatedFileSystem cannot run in REAL mode")
        self._mode = mode
        self._ops = operations or OperationLog(mode)
        self._files: dict[Path, bytes | None] = {}
        self._dirs: set[Path] = set()

    @property
    def mode(self) -> ExecutionMode:
        return self._mode

    @property
    def operations(self) -> OperationLog:
        return self._ops

    def exists(self, path: Path) -> bool:
        path = Path(path)
        if path in self._files:
            return self._files[path] is not None
        return path in self._dirs or path.exists()

    def is_dir(self, path: Path) -> bool:
        path = Path(path)
        if path in self._files:
            return False
        return path in self._dirs or path.is_dir()

    def read_bytes(self, path: Path) -> bytes:
        path = Path(path)
        if path in self._files:
            data = self._files[path]
            if data is None:
                raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))
            return data
        return path.read_bytes()

    def write_bytes(self, path: Path, data: bytes) -> None:
        path = Path(path)
        self._ops.record("write_bytes", path)
        self._require_parent(path)
        self._files[path] = bytes(data)

    def link(self, source: Path, destination: Path) -> None:
        source, destination = Path(source), Path(destination)
        self._ops.record("link", source, destination)
        if not self.exists(source):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(source))
        if self.exists(destination):
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), str(destination))
        self._files[destination] = self.read_bytes(source)

    def remove(self, path: Path) -> None:
        path = Path(path)
        self._ops.record("remove", path)
        if not self.exists(path) or self.is_dir(path):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))
        self._files[path] = None

    def mkdir(self, path: Path) -> None:
        path = Path(path)
        self._ops.record("mkdir", path)
        self._dirs.add(path)
        self._dirs.update(path.parents)

    def list_dir(self, path: Path) -> list[Path]:
        path = Path(path)
        entries: set[Path] = set()
        if path.is_dir():
            entries.update(path.iterdir())
        entries.update(p for p in self._files if p.parent == path)
        entries.update(d for d in self._dirs if d.parent == path and d != path)
        return sorted(p for p in entries if self.exists(p))

    def walk_files(self, path: Path) -> list[Path]:
        path = Path(path)
        found: set[Path] = set()
        if path.is_dir():
            for dirpath, _dirnames, filenames in os.walk(path, onerror=_raise_walk_error):
                found.update(Path(dirpath) / f for f in filenames)
        found.update(p for p in self._files if path in p.parents)
        return sorted(p for p in found if self.exists(p))

    def glob(self, directory: Path, pattern: str) -> list[Path]:
        directory = Path(directory)
        found = set(directory.glob(pattern))
        found.update(
            p for p in self._files
            if p.parent == directory and p.match(pattern)
        )
        return sorted(p for p in found if self.exists(p))

    def extract_tarball(self, archive: Path, destination: Path) -> None:
        self._ops.record("extract_tarball", archive, destination)

    def _require_parent(self, path: Path) -> None:
        if not self.is_dir(path.parent):
            raise FileNotFoundError(
                errno.ENOENT, os.strerror(errno.ENOENT), str(path.parent)
            )


def filesystem_for_mode(mode: ExecutionMode | str) -> FileSystem:
    """Build the filesystem backend for an execution mode."""
    mode = ExecutionMode(mode)
    if mode == ExecutionMode.REAL:
        return LocalFileSystem()
    return SimulatedFileSystem(mode)
