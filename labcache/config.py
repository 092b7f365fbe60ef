"""Runtime settings — env-driven.

Reads ``LABCACHE_*`` environment variables and an optional ``.env`` file.

Examples
--------
Preview what a run would do without touching the disk::

    export LABCACHE_MODE=simulate
    export LABCACHE_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from labcache.models.config import CacheLayout, ExecutionMode


class LabCacheSettings(BaseSettings):
    """Settings with environment variable overrides."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LABCACHE_",
        env_file_encoding="utf-8",
    )

    mode: ExecutionMode = ExecutionMode.REAL
    log_level: str = "INFO"

    experiment_root: Path = Path("experiment")
    corpus_root: Path = Path("corpus")

    @property
    def layout(self) -> CacheLayout:
        return CacheLayout(
            experiment_root=self.experiment_root,
            corpus_root=self.corpus_root,
        )
