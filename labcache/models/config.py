"""Execution mode and cache layout models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

LOCK_FILE_NAME = "LOCKFILE"
STAGING_LOCK_FILE_NAME = ".LOCKFILE"


class ExecutionMode(str, Enum):
    """How filesystem side effects are carried out.

    REAL performs them.  SIMULATE logs them and applies them to an
    in-memory overlay only.  TEST behaves like SIMULATE but records
    operations without logging them.
    """

    REAL = "real"
    SIMULATE = "simulate"
    TEST = "test"


class CacheLayout(BaseModel):
    """Directory layout of one experiment's cache.

    The corpus lock lives at the experiment root; every other stage has
    its own directory beneath it.
    """

    model_config = ConfigDict(frozen=True)

    experiment_root: Path
    corpus_root: Path

    @property
    def sample_root(self) -> Path:
        return self.experiment_root / "samples"

    @property
    def config_root(self) -> Path:
        return self.experiment_root / "configuration"

    @property
    def run_root(self) -> Path:
        return self.experiment_root / "run"

    @property
    def config_manifest_path(self) -> Path:
        return self.config_root / "config_manifest.txt"

    @property
    def script_path(self) -> Path:
        return self.config_root / "script.txt"

    @property
    def verify_out_path(self) -> Path:
        return self.experiment_root / "verify_out"

    @property
    def no_verify_out_path(self) -> Path:
        return self.experiment_root / "no_verify_out"

    def sample_path(self, sample_name: str) -> Path:
        return self.sample_root / sample_name

    def sample_manifest_path(self, sample_name: str) -> Path:
        return self.sample_path(sample_name) / "Manifest.txt"
