"""Stage cache — ties lock records, signatures and stage operations together.

Directory layout under the experiment root::

    LOCKFILE                      corpus record
    samples/<name>/LOCKFILE       sample record (corpus-signature)
    samples/<name>/Manifest.txt   files of the sample, one per line
    configuration/LOCKFILE        config record (sample-signature)
    run/LOCKFILE                  experiment record (sample + config)

Every stage operation is an external callback; this module decides when
to run it, hashes what it produced, and records the result.  ``init_*``
methods generate a stage from scratch and publish its record;
``update_*`` and ``verify_*`` methods work under the stage lock.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from labcache.core.accumulator import NoDataError, SignatureAccumulator
from labcache.core.dependency_validator import (
    DependencyValidationError,
    DependencyValidator,
    validate_config,
    validate_sample,
)
from labcache.core.filesystem import FileSystem, LocalFileSystem
from labcache.core.hasher import validate_data
from labcache.core.stage_lock import HardLinkStageLock, StageLock, lock_paths
from labcache.models.config import CacheLayout
from labcache.models.lock import (
    LockRecord,
    new_config_record,
    new_corpus_record,
    new_experiment_record,
    new_sample_record,
)
from labcache.models.stages import Stage

logger = logging.getLogger(__name__)

# () -> corpus signature
CorpusOperation = Callable[[], str]
# (sample_name, config_manifest_path, sample_path) -> None
SampleOperation = Callable[[str, Path, Path], None]
# (config_root, sample_manifest_path) -> None
ConfigOperation = Callable[[Path, Path], None]

# Artifacts the runtime configuration step must leave in the config root.
CONFIG_ARTIFACT_PATTERNS: list[tuple[str, str]] = [
    ("cumulative term counts", "CumulativeTermCounts-*.csv"),
    ("document frequency table", "DocFreqTable-*.csv"),
    ("indexed IDF table", "IndexedIdfTable-*.bin"),
    ("term table", "TermTable-*.bin"),
    ("document length histogram", "DocumentLengthHistogram.csv"),
    ("term table text mapping", "TermToText.bin"),
]


class StageCacheError(RuntimeError):
    """Raised when a stage's artifacts cannot be produced or signed."""


class UnknownSampleError(StageCacheError):
    def __init__(self, sample_name: str) -> None:
        self.sample_name = sample_name
        super().__init__(
            f"Sample '{sample_name}' was not declared for this experiment"
        )


class QueryLogSignatureError(StageCacheError):
    def __init__(self, source: str, expected: str) -> None:
        self.source = source
        self.expected = expected
        super().__init__(
            f"Query log at '{source}' does not match signature '{expected}'. "
            f"Does this point to the version of the file the experiment requires?"
        )


def parse_query_log(data: bytes, expected_signature: str, source: str = "<query log>") -> list[str]:
    """Verify a fetched query log against its signature and split it into queries."""
    if not validate_data(data, expected_signature):
        raise QueryLogSignatureError(source, expected_signature)
    return [line for line in data.decode("utf-8").split("\n") if line]


class StageCache:
    """Manages the cached stages of one experiment.

    Parameters
    ----------
    layout:
        Experiment and corpus directories.
    sample_names:
        Samples the experiment declares.
    lock:
        Stage lock implementation.  Defaults to hard links over ``filesystem``.
    filesystem:
        Backend for every file operation.
    """

    def __init__(
        self,
        layout: CacheLayout,
        sample_names: Sequence[str],
        *,
        lock: StageLock | None = None,
        filesystem: FileSystem | None = None,
        validator: DependencyValidator | None = None,
    ) -> None:
        self.layout = layout
        self._fs = filesystem or LocalFileSystem()
        self._lock = lock or HardLinkStageLock(self._fs)
        self._validator = validator or DependencyValidator()
        self._sample_names = list(sample_names)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def config_root(self) -> Path:
        return self.layout.config_root

    @property
    def config_manifest_path(self) -> Path:
        return self.layout.config_manifest_path

    @property
    def script_path(self) -> Path:
        return self.layout.script_path

    @property
    def sample_names(self) -> list[str]:
        return list(self._sample_names)

    def sample_path(self, sample_name: str) -> Path:
        if sample_name not in self._sample_names:
            raise UnknownSampleError(sample_name)
        return self.layout.sample_path(sample_name)

    def sample_manifest_path(self, sample_name: str) -> Path:
        return self.sample_path(sample_name) / "Manifest.txt"

    def stage_directory(self, stage: Stage, sample_name: str | None = None) -> Path:
        """Directory holding the lock record of ``stage``."""
        if stage == Stage.CORPUS:
            return self.layout.experiment_root
        if stage == Stage.SAMPLE:
            if sample_name is None:
                raise ValueError("The sample stage needs a sample name")
            return self.sample_path(sample_name)
        if stage == Stage.CONFIG:
            return self.layout.config_root
        return self.layout.run_root

    # ------------------------------------------------------------------
    # Corpus stage
    # ------------------------------------------------------------------

    def init_corpus_cache(self, decompress: CorpusOperation) -> str:
        """Decompress the corpus and publish its record.

        Initialization does not take the lock, so it is not protected
        against another process initializing the same experiment.
        """
        root = self.layout.experiment_root
        corpus_signature = decompress()
        self._fs.mkdir(root)
        record = new_corpus_record(str(lock_paths(root)[0]), corpus_signature)
        self._lock.publish(root, record, overwrite=True)
        logger.info("Initialized corpus cache at %s", root)
        return corpus_signature

    def update_corpus_cache(self, decompress: CorpusOperation) -> str:
        """Re-run decompression under the corpus lock and record the new signature."""
        with self._lock.hold(self.layout.experiment_root) as corpus:
            corpus_signature = decompress()
            corpus.update_signature(corpus_signature)
        return corpus_signature

    # ------------------------------------------------------------------
    # Sample stage
    # ------------------------------------------------------------------

    def init_sample_cache(self, create_sample: SampleOperation) -> dict[str, str]:
        """Create every sample and publish a record for each.

        Holds the corpus lock throughout, so the corpus cannot change while
        samples are being filtered from it.
        """
        signatures: dict[str, str] = {}
        with self._lock.hold(self.layout.experiment_root) as corpus:
            self._create_sample_directories()
            for name in self._sample_names:
                sample_path = self.sample_path(name)
                create_sample(name, self.config_manifest_path, sample_path)

                sample_files = self._read_lines(self.sample_manifest_path(name))
                sample_signature = self.create_signature(sample_files)

                record = new_sample_record(
                    str(lock_paths(sample_path)[0]),
                    sample_signature,
                    corpus.record.signature,
                )
                self._lock.publish(sample_path, record, overwrite=True)
                signatures[name] = sample_signature
                logger.info("Initialized sample cache %s", sample_path)
        return signatures

    def verify_sample_cache(self, sample_name: str) -> None:
        """Check that a sample was built from the current corpus."""
        with self._lock.hold(self.layout.experiment_root) as corpus:
            with self._lock.hold(self.sample_path(sample_name)) as sample:
                validate_sample(corpus.record, sample.record)

    # ------------------------------------------------------------------
    # Config stage
    # ------------------------------------------------------------------

    def init_config_cache(self, sample_name: str, configure: ConfigOperation) -> str:
        """Configure the runtime from a sample and publish the config record."""
        sample_path = self.sample_path(sample_name)
        with self._lock.hold(sample_path) as sample:
            self._fs.mkdir(self.config_root)
            configure(self.config_root, self.sample_manifest_path(sample_name))

            config_signature = self.create_signature(self.config_paths())
            record = new_config_record(
                str(lock_paths(self.config_root)[0]),
                config_signature,
                sample.record.signature,
            )
            self._lock.publish(self.config_root, record, overwrite=True)
        logger.info("Initialized config cache %s", self.config_root)
        return config_signature

    def config_paths(self) -> list[Path]:
        """Configuration artifacts to sign, in a fixed order."""
        paths: list[Path] = []
        missing: list[str] = []
        for label, pattern in CONFIG_ARTIFACT_PATTERNS:
            matches = self._fs.glob(self.config_root, pattern)
            if not matches:
                missing.append(label)
            paths.extend(matches)
        if missing:
            raise StageCacheError(
                f"Configuration directory '{self.config_root}' must contain at "
                f"least one of each of the following files: "
                f"{', '.join(label for label, _ in CONFIG_ARTIFACT_PATTERNS)}. "
                f"Missing: {', '.join(missing)}"
            )
        return paths

    # ------------------------------------------------------------------
    # Experiment stage
    # ------------------------------------------------------------------

    def record_experiment(
        self, sample_name: str, result_paths: Sequence[Path] = ()
    ) -> LockRecord:
        """Check config against sample and record the experiment's inputs.

        The experiment's own signature covers ``result_paths`` when given
        and is empty otherwise.
        """
        with self._lock.hold(self.sample_path(sample_name)) as sample:
            with self._lock.hold(self.config_root) as config:
                validate_config(sample.record, config.record)
                run_root = self.layout.run_root
                signature = self.create_signature(result_paths) if result_paths else ""
                record = new_experiment_record(
                    str(lock_paths(run_root)[0]),
                    sample.record.signature,
                    config.record.signature,
                    signature=signature,
                )
                self._fs.mkdir(run_root)
                self._lock.publish(run_root, record, overwrite=True)
        logger.info("Recorded experiment at %s", self.layout.run_root)
        return record

    # ------------------------------------------------------------------
    # Whole-chain inspection
    # ------------------------------------------------------------------

    def published_records(self, sample_name: str) -> dict[Stage, LockRecord]:
        """Read every published record of the chain through ``sample_name``.

        Stages that are not currently published are left out.
        """
        records: dict[Stage, LockRecord] = {}
        for stage in Stage:
            directory = self.stage_directory(stage, sample_name)
            if self._fs.exists(lock_paths(directory)[0]):
                records[stage] = self._lock.peek(directory)
        return records

    def verify_chain(self, sample_name: str) -> list[DependencyValidationError]:
        """Validate the published chain without taking any lock."""
        return self._validator.validate_chain(self.published_records(sample_name))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def create_signature(self, data_paths: Sequence[Path | str]) -> str:
        """Cumulative signature over the contents of ``data_paths``, in order.

        Blank entries (e.g. a trailing newline in a manifest) are skipped.
        """
        accumulator = SignatureAccumulator()
        for path in data_paths:
            if str(path).strip() == "":
                continue
            try:
                data = self._fs.read_bytes(Path(path))
            except OSError as exc:
                raise StageCacheError(
                    f"Attempted to create signature for data, but failed to read "
                    f"'{path}':\n{exc}"
                ) from exc
            accumulator.add(data)

        try:
            return accumulator.finalize()
        except NoDataError as exc:
            raise StageCacheError(
                "Attempted to create signature for data, but no files were given"
            ) from exc

    def write_config_manifest(self, corpus_paths: Sequence[Path | str]) -> None:
        """Write the corpus file list the sampling and configuration tools read."""
        self._fs.mkdir(self.config_root)
        text = "\n".join(str(p) for p in corpus_paths)
        try:
            self._fs.write_bytes(self.config_manifest_path, text.encode("utf-8"))
        except OSError as exc:
            raise StageCacheError(
                f"Failed to write configuration manifest file at "
                f"'{self.config_manifest_path}':\n{exc}"
            ) from exc

    def write_script(self, sample_name: str, queries: Sequence[str]) -> Path:
        """Write the replay script for a sample and a query log.

        The script caches every file of the sample, replays the queries
        with verification into ``verify_out``, then without into
        ``no_verify_out``.
        """
        manifest = self._read_lines(self.sample_manifest_path(sample_name))
        for directory in (
            self.config_root,
            self.layout.verify_out_path,
            self.layout.no_verify_out_path,
        ):
            self._fs.mkdir(directory)

        lines = [f"cache chunk {path}" for path in manifest if path]
        lines.extend(self._query_block(self.layout.verify_out_path, "verify", queries))
        lines.extend(self._query_block(self.layout.no_verify_out_path, "query", queries))

        try:
            self._fs.write_bytes(self.script_path, ("\n".join(lines) + "\n").encode("utf-8"))
        except OSError as exc:
            raise StageCacheError(
                f"Failed to write script file at '{self.script_path}':\n{exc}"
            ) from exc
        return self.script_path

    @staticmethod
    def _query_block(out_path: Path, verb: str, queries: Sequence[str]) -> list[str]:
        block = [f"cd {out_path}"]
        block.extend(f"{verb} one {q}" for q in queries if q)
        block.append("analyze")
        return block

    def _create_sample_directories(self) -> None:
        for name in self._sample_names:
            self._fs.mkdir(self.sample_path(name))

    def _read_lines(self, path: Path) -> list[str]:
        try:
            data = self._fs.read_bytes(path)
        except OSError as exc:
            raise StageCacheError(f"Failed to read '{path}':\n{exc}") from exc
        return data.decode("utf-8").split("\n")
