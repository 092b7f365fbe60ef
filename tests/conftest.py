"""Shared test fixtures for labcache."""

from __future__ import annotations

import hashlib
import io
import logging
import tarfile
from collections.abc import Callable
from pathlib import Path

import pytest

from labcache.core.filesystem import LocalFileSystem, SimulatedFileSystem
from labcache.core.stage_lock import HardLinkStageLock
from labcache.models.config import ExecutionMode
from labcache.models.corpus import ArchiveFile
from labcache.models.lock import LockRecord


def sha512(data: bytes) -> str:
    return hashlib.sha512(data).hexdigest()


# Fixed signatures for lock record tests.
CORPUS_SIGNATURE = sha512(b"corpus")
SAMPLE_SIGNATURE = sha512(b"sample")
CONFIG_SIGNATURE = sha512(b"config")


@pytest.fixture
def local_fs() -> LocalFileSystem:
    """Provide a real filesystem backend."""
    return LocalFileSystem()


@pytest.fixture
def test_fs() -> SimulatedFileSystem:
    """Provide a simulated backend in TEST mode (records, never logs)."""
    return SimulatedFileSystem(ExecutionMode.TEST)


@pytest.fixture
def stage_lock(local_fs: LocalFileSystem) -> HardLinkStageLock:
    """Provide a hard-link stage lock on the real filesystem."""
    return HardLinkStageLock(local_fs)


@pytest.fixture
def stage_dir(tmp_path: Path) -> Path:
    """Provide an empty cache directory."""
    directory = tmp_path / "stage"
    directory.mkdir()
    return directory


@pytest.fixture
def published_dir(stage_dir: Path, stage_lock: HardLinkStageLock) -> Path:
    """Provide a cache directory holding a published corpus record."""
    stage_lock.publish(stage_dir, LockRecord(signature=CORPUS_SIGNATURE))
    return stage_dir


def build_tarball(members: dict[str, bytes]) -> bytes:
    """Build an in-memory .tar.gz holding ``members`` (relative path -> content)."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., ArchiveFile]:
    """Factory fixture: write a tarball into the corpus root, return its ArchiveFile.

    The expected signature defaults to the archive's real SHA-512.
    """
    corpus_root = tmp_path / "corpus"
    corpus_root.mkdir(exist_ok=True)

    def _factory(
        name: str,
        members: dict[str, bytes],
        signature: str | None = None,
    ) -> ArchiveFile:
        data = build_tarball(members)
        (corpus_root / name).write_bytes(data)
        return ArchiveFile(name=name, file_signature=signature or sha512(data))

    return _factory


@pytest.fixture
def corpus_root(tmp_path: Path) -> Path:
    root = tmp_path / "corpus"
    root.mkdir(exist_ok=True)
    return root


@pytest.fixture(autouse=True)
def _restore_labcache_logger():
    """Undo CLI logging setup so caplog keeps seeing labcache records."""
    logger = logging.getLogger("labcache")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
