"""Checks that lock records chain correctly to their upstream stages.

A downstream record is valid only while every dependency signature it
recorded still equals the own signature of the upstream record it names.
Any difference means the cache is stale and the stage must be
regenerated.  Validation never mutates a record or touches the disk.
"""

from __future__ import annotations

from collections.abc import Mapping

from labcache.core.hasher import signatures_equal
from labcache.models.lock import LockRecord
from labcache.models.stages import (
    CONFIG_KEY,
    CORPUS_KEY,
    DEFAULT_STAGE_DEFINITIONS,
    SAMPLE_KEY,
    Stage,
    StageDefinition,
)


class DependencyValidationError(RuntimeError):
    """Base class for lock record chain failures."""


class DependencyCardinalityError(DependencyValidationError):
    """The dependency map does not have the size the stage expects."""

    def __init__(self, record_name: str, expected: int, actual: list[str]) -> None:
        self.record_name = record_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Lock record '{record_name}' must have exactly {expected} "
            f"dependency signature(s), but has {len(actual)}: {sorted(actual)}"
        )


class MissingDependencyError(DependencyValidationError):
    """The dependent record does not name the expected dependency key."""

    def __init__(self, record_name: str, key: str) -> None:
        self.record_name = record_name
        self.key = key
        super().__init__(
            f"Lock record '{record_name}' has no dependency signature for '{key}'"
        )


class EmptySignatureError(DependencyValidationError):
    """A signature on either side of the comparison is empty."""

    def __init__(self, record_name: str, key: str, *, upstream: bool) -> None:
        self.record_name = record_name
        self.key = key
        self.upstream = upstream
        which = "upstream signature" if upstream else f"dependency signature '{key}'"
        super().__init__(f"Lock record '{record_name}' has an empty {which}")


class StaleDependencyError(DependencyValidationError):
    """The recorded dependency signature no longer matches upstream."""

    def __init__(self, record_name: str, key: str, expected: str, actual: str) -> None:
        self.record_name = record_name
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Lock record '{record_name}' is stale: dependency '{key}' was built "
            f"from signature '{actual}', but upstream is now '{expected}'. "
            f"Regenerate this stage"
        )


class MissingUpstreamError(DependencyValidationError):
    """No record was supplied for a stage another stage depends on."""

    def __init__(self, stage: Stage, upstream: Stage) -> None:
        self.stage = stage
        self.upstream = upstream
        super().__init__(
            f"Cannot validate {stage.value} stage: no lock record for its "
            f"upstream {upstream.value} stage"
        )


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def validate(dependent: LockRecord, upstream: LockRecord, key: str) -> None:
    """Check that ``dependent`` recorded ``upstream``'s signature under ``key``."""
    name = dependent.name or "<unnamed>"
    if key not in dependent.dependency_signatures:
        raise MissingDependencyError(name, key)

    recorded = dependent.dependency_signatures[key]
    if not recorded:
        raise EmptySignatureError(name, key, upstream=False)
    if not upstream.signature:
        raise EmptySignatureError(upstream.name or "<unnamed>", key, upstream=True)

    if not signatures_equal(recorded, upstream.signature):
        raise StaleDependencyError(name, key, upstream.signature, recorded)


def validate_singleton(dependent: LockRecord, upstream: LockRecord, key: str) -> None:
    """``validate`` for stages with exactly one dependency."""
    _check_cardinality(dependent, 1)
    validate(dependent, upstream, key)


def validate_pair(
    dependent: LockRecord,
    first: LockRecord,
    first_key: str,
    second: LockRecord,
    second_key: str,
) -> None:
    """``validate`` for stages with exactly two dependencies."""
    _check_cardinality(dependent, 2)
    validate(dependent, first, first_key)
    validate(dependent, second, second_key)


def _check_cardinality(dependent: LockRecord, expected: int) -> None:
    keys = list(dependent.dependency_signatures)
    if len(keys) != expected:
        raise DependencyCardinalityError(dependent.name or "<unnamed>", expected, keys)


# ---------------------------------------------------------------------------
# Stage-level validation
# ---------------------------------------------------------------------------


def validate_sample(corpus: LockRecord, sample: LockRecord) -> None:
    validate_singleton(sample, corpus, CORPUS_KEY)


def validate_config(sample: LockRecord, config: LockRecord) -> None:
    validate_singleton(config, sample, SAMPLE_KEY)


def validate_experiment(sample: LockRecord, config: LockRecord, experiment: LockRecord) -> None:
    validate_pair(experiment, sample, SAMPLE_KEY, config, CONFIG_KEY)


class DependencyValidator:
    """Validates lock records against the stage definitions.

    Parameters
    ----------
    definitions:
        Stage definitions giving each stage's expected dependency keys.
    """

    def __init__(self, definitions: list[StageDefinition] | None = None) -> None:
        defs = definitions if definitions is not None else DEFAULT_STAGE_DEFINITIONS
        self._definitions = {d.stage: d for d in sorted(defs, key=lambda d: d.ordinal)}

    def definition(self, stage: Stage) -> StageDefinition:
        return self._definitions[stage]

    def validate_stage(
        self,
        stage: Stage,
        dependent: LockRecord,
        upstreams: Mapping[Stage, LockRecord],
    ) -> None:
        """Validate one stage's record against the records it depends on."""
        definition = self._definitions[stage]
        _check_cardinality(dependent, definition.dependency_count)
        for key, upstream_stage in definition.dependencies.items():
            if upstream_stage not in upstreams:
                raise MissingUpstreamError(stage, upstream_stage)
            validate(dependent, upstreams[upstream_stage], key)

    def validate_chain(
        self, records: Mapping[Stage, LockRecord]
    ) -> list[DependencyValidationError]:
        """Validate every supplied record; return the failures in stage order.

        An empty list means the chain is consistent.
        """
        failures: list[DependencyValidationError] = []
        for stage in self._definitions:
            if stage not in records:
                continue
            try:
                self.validate_stage(stage, records[stage], records)
            except DependencyValidationError as exc:
                failures.append(exc)
        return failures
