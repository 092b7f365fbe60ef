"""Tests for lock record chain validation."""

from __future__ import annotations

import hashlib

import pytest

from labcache.core.dependency_validator import (
    DependencyCardinalityError,
    DependencyValidator,
    EmptySignatureError,
    MissingDependencyError,
    MissingUpstreamError,
    StaleDependencyError,
    validate,
    validate_config,
    validate_experiment,
    validate_pair,
    validate_sample,
    validate_singleton,
)
from labcache.models.lock import (
    LockRecord,
    new_config_record,
    new_corpus_record,
    new_experiment_record,
    new_sample_record,
)
from labcache.models.stages import CONFIG_KEY, CORPUS_KEY, SAMPLE_KEY, Stage

CORPUS_SIG = hashlib.sha512(b"corpus").hexdigest()
SAMPLE_SIG = hashlib.sha512(b"sample").hexdigest()
CONFIG_SIG = hashlib.sha512(b"config").hexdigest()
OTHER_SIG = hashlib.sha512(b"other").hexdigest()


def _chain() -> dict[Stage, LockRecord]:
    return {
        Stage.CORPUS: new_corpus_record("corpus", CORPUS_SIG),
        Stage.SAMPLE: new_sample_record("sample", SAMPLE_SIG, CORPUS_SIG),
        Stage.CONFIG: new_config_record("config", CONFIG_SIG, SAMPLE_SIG),
        Stage.EXPERIMENT: new_experiment_record("experiment", SAMPLE_SIG, CONFIG_SIG),
    }


class TestValidate:
    def test_matching_signature_passes(self):
        upstream = LockRecord(signature=CORPUS_SIG)
        dependent = LockRecord(dependency_signatures={CORPUS_KEY: CORPUS_SIG})
        validate(dependent, upstream, CORPUS_KEY)

    def test_match_ignores_case(self):
        upstream = LockRecord.model_construct(
            signature=CORPUS_SIG.upper(), dependency_signatures={}, name="", locked=False
        )
        dependent = LockRecord(dependency_signatures={CORPUS_KEY: CORPUS_SIG})
        validate(dependent, upstream, CORPUS_KEY)

    def test_missing_key(self):
        dependent = LockRecord(name="s", dependency_signatures={"wrong-key": CORPUS_SIG})
        with pytest.raises(MissingDependencyError) as info:
            validate(dependent, LockRecord(signature=CORPUS_SIG), CORPUS_KEY)
        assert info.value.key == CORPUS_KEY
        assert info.value.record_name == "s"

    def test_empty_dependency_signature(self):
        dependent = LockRecord(dependency_signatures={CORPUS_KEY: ""})
        with pytest.raises(EmptySignatureError) as info:
            validate(dependent, LockRecord(signature=CORPUS_SIG), CORPUS_KEY)
        assert info.value.upstream is False

    def test_empty_upstream_signature(self):
        dependent = LockRecord(dependency_signatures={CORPUS_KEY: CORPUS_SIG})
        with pytest.raises(EmptySignatureError) as info:
            validate(dependent, LockRecord(signature=""), CORPUS_KEY)
        assert info.value.upstream is True

    def test_stale_signature(self):
        dependent = LockRecord(name="s", dependency_signatures={CORPUS_KEY: CORPUS_SIG})
        with pytest.raises(StaleDependencyError) as info:
            validate(dependent, LockRecord(signature=OTHER_SIG), CORPUS_KEY)
        assert info.value.expected == OTHER_SIG
        assert info.value.actual == CORPUS_SIG
        assert "Regenerate" in str(info.value)


class TestCardinality:
    def test_singleton_rejects_two_keys(self):
        dependent = LockRecord(
            dependency_signatures={CORPUS_KEY: CORPUS_SIG, "extra": CORPUS_SIG}
        )
        with pytest.raises(DependencyCardinalityError) as info:
            validate_singleton(dependent, LockRecord(signature=CORPUS_SIG), CORPUS_KEY)
        assert info.value.expected == 1

    def test_singleton_rejects_none(self):
        with pytest.raises(DependencyCardinalityError):
            validate_singleton(LockRecord(), LockRecord(signature=CORPUS_SIG), CORPUS_KEY)

    def test_pair_rejects_one_key(self):
        dependent = LockRecord(dependency_signatures={SAMPLE_KEY: SAMPLE_SIG})
        with pytest.raises(DependencyCardinalityError):
            validate_pair(
                dependent,
                LockRecord(signature=SAMPLE_SIG), SAMPLE_KEY,
                LockRecord(signature=CONFIG_SIG), CONFIG_KEY,
            )

    def test_pair_with_wrong_second_key(self):
        dependent = LockRecord(
            dependency_signatures={SAMPLE_KEY: SAMPLE_SIG, "other": CONFIG_SIG}
        )
        with pytest.raises(MissingDependencyError):
            validate_pair(
                dependent,
                LockRecord(signature=SAMPLE_SIG), SAMPLE_KEY,
                LockRecord(signature=CONFIG_SIG), CONFIG_KEY,
            )


class TestStageValidation:
    def test_sample_against_corpus(self):
        chain = _chain()
        validate_sample(chain[Stage.CORPUS], chain[Stage.SAMPLE])

    def test_config_against_sample(self):
        chain = _chain()
        validate_config(chain[Stage.SAMPLE], chain[Stage.CONFIG])

    def test_experiment_against_sample_and_config(self):
        chain = _chain()
        validate_experiment(chain[Stage.SAMPLE], chain[Stage.CONFIG], chain[Stage.EXPERIMENT])

    def test_sample_after_corpus_changed(self):
        chain = _chain()
        corpus = chain[Stage.CORPUS].with_signature(OTHER_SIG)
        with pytest.raises(StaleDependencyError):
            validate_sample(corpus, chain[Stage.SAMPLE])


class TestDependencyValidator:
    def test_consistent_chain(self):
        assert DependencyValidator().validate_chain(_chain()) == []

    def test_partial_chain(self):
        chain = _chain()
        del chain[Stage.EXPERIMENT]
        del chain[Stage.CONFIG]
        assert DependencyValidator().validate_chain(chain) == []

    def test_stale_sample_reported(self):
        chain = _chain()
        chain[Stage.CORPUS] = chain[Stage.CORPUS].with_signature(OTHER_SIG)
        failures = DependencyValidator().validate_chain(chain)
        assert len(failures) == 1
        assert isinstance(failures[0], StaleDependencyError)
        assert failures[0].record_name == "sample"

    def test_failures_in_stage_order(self):
        chain = _chain()
        chain[Stage.CORPUS] = chain[Stage.CORPUS].with_signature(OTHER_SIG)
        chain[Stage.CONFIG] = new_config_record("config", OTHER_SIG, SAMPLE_SIG)
        failures = DependencyValidator().validate_chain(chain)
        assert [f.record_name for f in failures] == ["sample", "experiment"]

    def test_corpus_record_must_have_no_dependencies(self):
        chain = _chain()
        chain[Stage.CORPUS] = LockRecord(
            name="corpus",
            signature=CORPUS_SIG,
            dependency_signatures={"archive.tar.gz": CORPUS_SIG},
        )
        failures = DependencyValidator().validate_chain(chain)
        assert len(failures) == 1
        assert isinstance(failures[0], DependencyCardinalityError)

    def test_missing_upstream_stage(self):
        chain = _chain()
        del chain[Stage.SAMPLE]
        failures = DependencyValidator().validate_chain(chain)
        assert len(failures) == 2
        assert all(isinstance(f, MissingUpstreamError) for f in failures)
        assert failures[0].stage == Stage.CONFIG
        assert failures[0].upstream == Stage.SAMPLE

    def test_validate_stage_raises(self):
        chain = _chain()
        with pytest.raises(MissingUpstreamError):
            DependencyValidator().validate_stage(
                Stage.SAMPLE, chain[Stage.SAMPLE], {}
            )

    def test_definition_lookup(self):
        definition = DependencyValidator().definition(Stage.EXPERIMENT)
        assert definition.dependency_keys == [SAMPLE_KEY, CONFIG_KEY]
        assert definition.dependency_count == 2
