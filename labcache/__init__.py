"""labcache: staged, content-addressed build cache for experiment pipelines.

Each stage of an experiment (corpus, sample, config, experiment) records
the SHA-512 signature of its output and the signatures of the stages it
was built from.  Records are guarded by a hard-link based, single-writer
lock so that concurrent or interrupted runs cannot corrupt the cache.
"""

__version__ = "0.1.0"

from labcache.core.accumulator import NoDataError, SignatureAccumulator
from labcache.core.corpus import CorpusVerifier
from labcache.core.dependency_validator import DependencyValidator
from labcache.core.stage_cache import StageCache
from labcache.core.stage_lock import HardLinkStageLock, StageLock
from labcache.models.lock import LockRecord

__all__ = [
    "CorpusVerifier",
    "DependencyValidator",
    "HardLinkStageLock",
    "LockRecord",
    "NoDataError",
    "SignatureAccumulator",
    "StageCache",
    "StageLock",
    "__version__",
]
