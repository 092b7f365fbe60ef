"""Cross-process stage lock built on hard links.

Each cache directory holds at most two lock artifacts:

- ``LOCKFILE``: the published record; the stage is idle and cached.
- ``.LOCKFILE``: the staging record; a run holds the lock, or a
  previous run died while holding it.

``acquire`` moves ``LOCKFILE`` to ``.LOCKFILE`` by hard-linking and then
deleting the original.  Creating the link fails atomically if
``.LOCKFILE`` already exists, so exactly one process wins.  ``release``
writes the (possibly updated) record to ``.LOCKFILE`` and moves it back.

Nothing here waits or retries.  A directory left in transit by a crash is
reported, never repaired: deciding whether ``.LOCKFILE`` is evidence of a
live writer or of a dead one is left to the operator.

Note that ``release`` is not crash-atomic: a crash after the staging write
but before the re-link leaves the directory in transit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from labcache.core.filesystem import FileSystem, LocalFileSystem
from labcache.models.config import LOCK_FILE_NAME, STAGING_LOCK_FILE_NAME
from labcache.models.lock import (
    LockRecord,
    deserialize_lock_record,
    serialize_lock_record,
)

logger = logging.getLogger(__name__)


class LockState(str, Enum):
    """Lock artifact state of a cache directory."""

    PUBLISHED = "published"          # only LOCKFILE
    IN_TRANSIT = "in_transit"        # only .LOCKFILE
    UNINITIALIZED = "uninitialized"  # neither
    AMBIGUOUS = "ambiguous"          # both; an acquire failed half-way


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LockError(RuntimeError):
    """Base class for stage lock failures.

    Attributes
    ----------
    path:
        The lock artifact the failure concerns.
    cause:
        The underlying OS error, where there is one.
    """

    def __init__(self, path: Path, cause: BaseException | None = None) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(self._message())

    def _message(self) -> str:
        return f"Lock operation failed at '{self.path}'"


class SourceDoesNotExistError(LockError):
    """``LOCKFILE`` is absent: the stage has no cached output yet."""

    def _message(self) -> str:
        return f"Could not acquire lock file at '{self.path}' because it does not exist"


class DestinationExistsError(LockError):
    """``.LOCKFILE`` is present: another process holds the lock, or one crashed."""

    def _message(self) -> str:
        return (
            f"Could not acquire lock file because '{self.path}' exists. If you are "
            f"sure no other process is modifying this directory, move "
            f"{STAGING_LOCK_FILE_NAME} -> {LOCK_FILE_NAME} and try again. If you "
            f"think {STAGING_LOCK_FILE_NAME} is corrupt, delete and re-generate "
            f"this directory"
        )


class CouldNotRemoveSourceError(LockError):
    """The link succeeded but ``LOCKFILE`` could not be deleted; both exist."""

    def _message(self) -> str:
        return (
            f"Could not acquire lock file at '{self.path}'; linked "
            f"{LOCK_FILE_NAME} -> {STAGING_LOCK_FILE_NAME} but failed to delete "
            f"{LOCK_FILE_NAME}. Both files now exist. If another process moved "
            f"{STAGING_LOCK_FILE_NAME} and you are sure it is not corrupt, move "
            f"{STAGING_LOCK_FILE_NAME} -> {LOCK_FILE_NAME} and try again. "
            f"The delete error follows:\n{self.cause}"
        )


class UnknownLockError(LockError):
    """Any other OS-level failure while taking the lock."""

    def _message(self) -> str:
        return (
            f"Could not acquire lock file at '{self.path}'; attempted to move "
            f"{LOCK_FILE_NAME} -> {STAGING_LOCK_FILE_NAME}, but failed with "
            f"error:\n{self.cause}"
        )


class LockReleaseError(LockError):
    """Releasing failed; the directory is left in transit."""

    def __init__(self, path: Path, reason: str, cause: BaseException | None = None) -> None:
        self.reason = reason
        super().__init__(path, cause)

    def _message(self) -> str:
        msg = f"Attempted to release lock file, but {self.reason}: '{self.path}'"
        if self.cause is not None:
            msg += f"\n{self.cause}"
        return msg


class LockAlreadyPublishedError(LockError):
    """``publish`` was asked to initialize a stage that is already cached."""

    def _message(self) -> str:
        return (
            f"Refusing to initialize lock file at '{self.path}' because it "
            f"already exists; acquire and release it instead"
        )


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class LockHandle:
    """A held lock.  Replace ``record`` to change what gets released."""

    def __init__(self, directory: Path, record: LockRecord) -> None:
        self.directory = Path(directory)
        self.record = record

    def update_signature(self, signature: str) -> None:
        self.record = self.record.with_signature(signature)


@runtime_checkable
class StageLock(Protocol):
    """Single-host mutual exclusion over one stage's lock record."""

    def acquire(self, directory: Path) -> LockRecord: ...

    def release(self, directory: Path, record: LockRecord) -> None: ...

    def publish(self, directory: Path, record: LockRecord, *, overwrite: bool = False) -> None: ...

    def peek(self, directory: Path) -> LockRecord: ...

    def state(self, directory: Path) -> LockState: ...

    def hold(self, directory: Path) -> AbstractContextManager[LockHandle]: ...


# ---------------------------------------------------------------------------
# Hard-link implementation
# ---------------------------------------------------------------------------


def lock_paths(directory: Path) -> tuple[Path, Path]:
    """Return ``(LOCKFILE, .LOCKFILE)`` for a cache directory."""
    directory = Path(directory)
    return directory / LOCK_FILE_NAME, directory / STAGING_LOCK_FILE_NAME


class HardLinkStageLock:
    """``StageLock`` backed by hard-link creation.

    Parameters
    ----------
    filesystem:
        Backend for every file operation.  Defaults to the real disk.
    """

    def __init__(self, filesystem: FileSystem | None = None) -> None:
        self._fs = filesystem or LocalFileSystem()

    @property
    def filesystem(self) -> FileSystem:
        return self._fs

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------

    def acquire(self, directory: Path) -> LockRecord:
        """Take the lock on ``directory`` and return its record.

        On success the directory is in transit until ``release``.
        """
        lock_path, staging_path = lock_paths(directory)

        try:
            self._fs.link(lock_path, staging_path)
        except FileExistsError as exc:
            logger.warning("Lock contention at %s", staging_path)
            raise DestinationExistsError(staging_path, exc) from exc
        except FileNotFoundError as exc:
            # A lone .LOCKFILE means a run is in progress (or died); that
            # must not be mistaken for an uncached stage.
            if self._fs.exists(staging_path):
                logger.warning("Lock at %s is in transit", staging_path)
                raise DestinationExistsError(staging_path, exc) from exc
            raise SourceDoesNotExistError(lock_path, exc) from exc
        except OSError as exc:
            raise UnknownLockError(lock_path, exc) from exc

        try:
            self._fs.remove(lock_path)
        except OSError as exc:
            logger.error(
                "Linked %s but could not remove it; both lock files exist", lock_path
            )
            raise CouldNotRemoveSourceError(lock_path, exc) from exc

        record = self._read(staging_path, name=lock_path)
        logger.info("Acquired lock %s", lock_path)
        return record.with_state(locked=True)

    def release(self, directory: Path, record: LockRecord) -> None:
        """Write ``record`` and publish it as the directory's ``LOCKFILE``."""
        lock_path, staging_path = lock_paths(directory)
        data = serialize_lock_record(record).encode("utf-8")

        try:
            self._fs.write_bytes(staging_path, data)
        except OSError as exc:
            raise LockReleaseError(staging_path, "could not write the staging record", exc) from exc

        try:
            self._fs.link(staging_path, lock_path)
        except FileNotFoundError as exc:
            raise LockReleaseError(staging_path, "the staging record does not exist", exc) from exc
        except FileExistsError as exc:
            raise LockReleaseError(lock_path, "the published record already exists", exc) from exc
        except OSError as exc:
            raise LockReleaseError(staging_path, "linking the staging record failed", exc) from exc

        try:
            self._fs.remove(staging_path)
        except OSError as exc:
            raise LockReleaseError(staging_path, "could not remove the staging record", exc) from exc

        logger.info("Released lock %s", lock_path)

    @contextmanager
    def hold(self, directory: Path) -> Iterator[LockHandle]:
        """Acquire, yield a handle, and always release the handle's record.

        If the body raises, the release still runs and the body's exception
        propagates; a release failure at that point is logged.
        """
        record = self.acquire(directory)
        handle = LockHandle(directory, record)
        try:
            yield handle
        except BaseException:
            try:
                self.release(directory, handle.record)
            except LockError:
                logger.exception(
                    "Failed to release %s after an earlier error", directory
                )
            raise
        self.release(directory, handle.record)

    # ------------------------------------------------------------------
    # Initialization and inspection
    # ------------------------------------------------------------------

    def publish(self, directory: Path, record: LockRecord, *, overwrite: bool = False) -> None:
        """Write ``record`` as the published lock of a stage.

        Used when a stage is (re)generated from scratch.  Never writes while
        a ``.LOCKFILE`` exists.  This is a plain write, not a lock: callers
        initializing a stage are not protected against each other.
        """
        lock_path, staging_path = lock_paths(directory)
        if self._fs.exists(staging_path):
            raise DestinationExistsError(staging_path)
        if not overwrite and self._fs.exists(lock_path):
            raise LockAlreadyPublishedError(lock_path)

        data = serialize_lock_record(record).encode("utf-8")
        try:
            self._fs.write_bytes(lock_path, data)
        except OSError as exc:
            raise UnknownLockError(lock_path, exc) from exc
        logger.info("Published lock %s", lock_path)

    def peek(self, directory: Path) -> LockRecord:
        """Read the published record without taking the lock."""
        lock_path, _ = lock_paths(directory)
        if not self._fs.exists(lock_path):
            raise SourceDoesNotExistError(lock_path)
        return self._read(lock_path, name=lock_path)

    def state(self, directory: Path) -> LockState:
        lock_path, staging_path = lock_paths(directory)
        published = self._fs.exists(lock_path)
        staged = self._fs.exists(staging_path)
        if published and staged:
            return LockState.AMBIGUOUS
        if published:
            return LockState.PUBLISHED
        if staged:
            return LockState.IN_TRANSIT
        return LockState.UNINITIALIZED

    def _read(self, path: Path, *, name: Path) -> LockRecord:
        try:
            data = self._fs.read_bytes(path)
        except OSError as exc:
            raise UnknownLockError(path, exc) from exc
        return deserialize_lock_record(data, name=str(name))
