"""Corpus verification and decompression.

Archives are processed in the order the experiment lists them.  Each
archive's bytes are fed once through a shared ``SignatureAccumulator``:
the per-archive signature returned by ``add`` is checked against the
expected signature before anything is extracted, and the cumulative
signature becomes the corpus stage's own signature.

A mismatch aborts the whole run; archives after the bad one are neither
read nor extracted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from labcache.core.accumulator import NoDataError, SignatureAccumulator
from labcache.core.filesystem import FileSystem, LocalFileSystem
from labcache.core.hasher import signatures_equal
from labcache.models.corpus import ArchiveFile

logger = logging.getLogger(__name__)

# (archive_path, corpus_root) -> None
Extractor = Callable[[Path, Path], None]


class CorpusError(RuntimeError):
    """Base class for corpus verification failures."""


class ArchiveNotFoundError(CorpusError):
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(f"Corpus file '{self.path}' does not exist.")


class ArchiveReadError(CorpusError):
    def __init__(self, path: Path, cause: BaseException) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"Failed to read corpus file '{self.path}':\n{cause}")


class CorpusListingError(CorpusError):
    def __init__(self, path: Path, cause: BaseException) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"Failed to list corpus files under '{self.path}':\n{cause}")


class ArchiveSignatureMismatchError(CorpusError):
    def __init__(self, path: Path, expected: str, actual: str) -> None:
        self.path = Path(path)
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"SHA512 hash for corpus file '{self.path}' does not match the hash "
            f"specified in the experiment definition (expected '{expected}', got "
            f"'{actual}'). Does the experiment reference the right version of "
            f"this file?"
        )


class CorpusAlreadyDecompressedError(CorpusError):
    def __init__(self, corpus_root: Path) -> None:
        self.corpus_root = Path(corpus_root)
        super().__init__(f"Corpus at '{self.corpus_root}' was already decompressed")


class CorpusNotDecompressedError(CorpusError):
    def __init__(self, corpus_root: Path) -> None:
        self.corpus_root = Path(corpus_root)
        super().__init__(
            f"Corpus at '{self.corpus_root}' must be decompressed before its "
            f"files can be listed"
        )


class EmptyCorpusError(CorpusError):
    def __init__(self, corpus_root: Path) -> None:
        self.corpus_root = Path(corpus_root)
        super().__init__(
            f"Corpus at '{self.corpus_root}' lists no archives; there is nothing "
            f"to sign"
        )


class CorpusVerifier:
    """Verifies and decompresses one corpus directory.

    Parameters
    ----------
    archives:
        The corpus archives, in the order they are to be signed.
    corpus_root:
        Directory holding the archives; extraction target.
    filesystem:
        Backend for reads and, by default, extraction.
    extract:
        Extraction operation.  Defaults to ``filesystem.extract_tarball``.
    """

    def __init__(
        self,
        archives: Sequence[ArchiveFile],
        corpus_root: Path,
        *,
        filesystem: FileSystem | None = None,
        extract: Extractor | None = None,
    ) -> None:
        self._archives = list(archives)
        self._root = Path(corpus_root)
        self._fs = filesystem or LocalFileSystem()
        self._extract = extract or self._fs.extract_tarball
        self._decompressed = False

    @property
    def corpus_root(self) -> Path:
        return self._root

    @property
    def archives(self) -> list[ArchiveFile]:
        return list(self._archives)

    @property
    def decompressed(self) -> bool:
        return self._decompressed

    def decompress(self) -> str:
        """Verify and extract every archive; return the corpus signature."""
        if self._decompressed:
            raise CorpusAlreadyDecompressedError(self._root)

        accumulator = SignatureAccumulator()
        for archive in self._archives:
            path = self._root / archive.name
            data = self._read_archive(path)

            actual = accumulator.add(data)
            if not signatures_equal(actual, archive.file_signature):
                logger.error("Signature mismatch for corpus archive %s", path)
                raise ArchiveSignatureMismatchError(path, archive.file_signature, actual)

            logger.info("Verified corpus archive %s", path)
            self._extract(path, self._root)

        try:
            corpus_signature = accumulator.finalize()
        except NoDataError as exc:
            raise EmptyCorpusError(self._root) from exc

        self._decompressed = True
        logger.info(
            "Decompressed %d archive(s) into %s", accumulator.count, self._root
        )
        return corpus_signature

    def list_corpus_files(self) -> list[Path]:
        """Every file beneath the corpus root's top-level directories.

        Top-level files are the archives themselves and are skipped.
        """
        if not self._decompressed:
            raise CorpusNotDecompressedError(self._root)

        corpus_files: list[Path] = []
        for child in self._fs.list_dir(self._root):
            if not self._fs.is_dir(child):
                continue
            try:
                corpus_files.extend(self._fs.walk_files(child))
            except OSError as exc:
                raise CorpusListingError(Path(exc.filename or child), exc) from exc
        return corpus_files

    def _read_archive(self, path: Path) -> bytes:
        if not self._fs.exists(path):
            raise ArchiveNotFoundError(path)
        try:
            return self._fs.read_bytes(path)
        except OSError as exc:
            raise ArchiveReadError(path, exc) from exc
