"""labcache data models — Pydantic v2, frozen."""

from labcache.models.config import (
    LOCK_FILE_NAME,
    STAGING_LOCK_FILE_NAME,
    CacheLayout,
    ExecutionMode,
)
from labcache.models.corpus import ArchiveFile
from labcache.models.lock import (
    LockRecord,
    LockRecordFormatError,
    deserialize_lock_record,
    new_config_record,
    new_corpus_record,
    new_experiment_record,
    new_sample_record,
    serialize_lock_record,
)
from labcache.models.stages import (
    CONFIG_KEY,
    CORPUS_KEY,
    DEFAULT_STAGE_DEFINITIONS,
    SAMPLE_KEY,
    STAGE_DEFINITIONS,
    Stage,
    StageDefinition,
)

__all__ = [
    # config
    "ExecutionMode",
    "CacheLayout",
    "LOCK_FILE_NAME",
    "STAGING_LOCK_FILE_NAME",
    # corpus
    "ArchiveFile",
    # lock records
    "LockRecord",
    "LockRecordFormatError",
    "serialize_lock_record",
    "deserialize_lock_record",
    "new_corpus_record",
    "new_sample_record",
    "new_config_record",
    "new_experiment_record",
    # stages
    "Stage",
    "StageDefinition",
    "DEFAULT_STAGE_DEFINITIONS",
    "STAGE_DEFINITIONS",
    "CORPUS_KEY",
    "SAMPLE_KEY",
    "CONFIG_KEY",
]
