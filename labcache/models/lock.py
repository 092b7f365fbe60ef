"""Lock record model and its YAML file format.

A lock record is the verified state of one cache stage: the signature of
the stage's own output plus the signatures of the stages it was built
from.  On disk it is a small YAML document::

    dependency-signatures:
      corpus-signature: 7377a372...
    signature: b8244d02...

``name`` and ``locked`` are runtime-only and never serialized.
"""

from __future__ import annotations

from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from labcache.core.hasher import Signature, normalize_signature
from labcache.models.stages import CONFIG_KEY, CORPUS_KEY, SAMPLE_KEY

_DEPENDENCIES_FIELD = "dependency-signatures"
_SIGNATURE_FIELD = "signature"


class LockRecordFormatError(RuntimeError):
    """Raised when a lock record document cannot be parsed."""


class LockRecord(BaseModel):
    """Persisted state of a single cache stage."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    signature: Signature = ""
    dependency_signatures: dict[str, Signature] = Field(
        default_factory=dict, alias=_DEPENDENCIES_FIELD
    )
    name: str = Field(default="", exclude=True)
    locked: bool = Field(default=False, exclude=True)

    def with_signature(self, signature: str) -> LockRecord:
        """Return a copy of this record with a new own signature."""
        return self.model_copy(update={"signature": normalize_signature(signature)})

    def with_state(self, *, name: str | None = None, locked: bool | None = None) -> LockRecord:
        """Return a copy with updated runtime-only fields."""
        update: dict[str, Any] = {}
        if name is not None:
            update["name"] = name
        if locked is not None:
            update["locked"] = locked
        return self.model_copy(update=update)


# ---------------------------------------------------------------------------
# Stage constructors
# ---------------------------------------------------------------------------


def new_corpus_record(name: str, signature: str) -> LockRecord:
    return LockRecord(name=name, signature=signature)


def new_sample_record(name: str, signature: str, corpus_signature: str) -> LockRecord:
    return LockRecord(
        name=name,
        signature=signature,
        dependency_signatures={CORPUS_KEY: corpus_signature},
    )


def new_config_record(name: str, signature: str, sample_signature: str) -> LockRecord:
    return LockRecord(
        name=name,
        signature=signature,
        dependency_signatures={SAMPLE_KEY: sample_signature},
    )


def new_experiment_record(
    name: str,
    sample_signature: str,
    config_signature: str,
    signature: str = "",
) -> LockRecord:
    return LockRecord(
        name=name,
        signature=signature,
        dependency_signatures={
            SAMPLE_KEY: sample_signature,
            CONFIG_KEY: config_signature,
        },
    )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_lock_record(record: LockRecord) -> str:
    """Render a lock record as a YAML document (keys sorted)."""
    document = {
        _DEPENDENCIES_FIELD: dict(sorted(record.dependency_signatures.items())),
        _SIGNATURE_FIELD: record.signature,
    }
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=True)


def deserialize_lock_record(text: str | bytes, name: str = "") -> LockRecord:
    """Parse a YAML lock record document.

    Signatures are normalized here, once.  The document is read with
    ``yaml.BaseLoader`` so every scalar keeps its exact text: ``0777`` stays
    ``"0777"`` rather than becoming an octal integer.
    """
    try:
        document = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise LockRecordFormatError(
            f"Lock record '{name}' is not valid YAML:\n{exc}"
        ) from exc

    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise LockRecordFormatError(
            f"Lock record '{name}' must be a mapping, got {type(document).__name__}"
        )

    dependencies = document.get(_DEPENDENCIES_FIELD) or {}
    if not isinstance(dependencies, dict):
        raise LockRecordFormatError(
            f"Lock record '{name}' field '{_DEPENDENCIES_FIELD}' must be a mapping"
        )

    try:
        return LockRecord.model_validate(
            {
                "signature": _scalar(name, _SIGNATURE_FIELD, document.get(_SIGNATURE_FIELD)),
                _DEPENDENCIES_FIELD: {
                    k: _scalar(name, k, v) for k, v in dependencies.items()
                },
                "name": name,
            }
        )
    except ValidationError as exc:
        raise LockRecordFormatError(
            f"Lock record '{name}' failed validation:\n{exc}"
        ) from exc


def _scalar(name: str, field: str, value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise LockRecordFormatError(
            f"Lock record '{name}' field '{field}' must be a scalar, "
            f"got {type(value).__name__}"
        )
    return value
