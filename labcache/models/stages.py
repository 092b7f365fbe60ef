"""Cache stage models — the four ordered stages and their dependency shapes."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Stage(str, Enum):
    """The ordered stages of an experiment cache."""

    CORPUS = "corpus"
    SAMPLE = "sample"
    CONFIG = "config"
    EXPERIMENT = "experiment"


# Dependency-map keys under which a stage records its upstream signatures.
CORPUS_KEY = "corpus-signature"
SAMPLE_KEY = "sample-signature"
CONFIG_KEY = "config-signature"


class StageDefinition(BaseModel):
    """A stage plus the dependency keys its lock record must carry.

    ``dependencies`` maps each expected key to the upstream stage whose
    own signature it must equal.
    """

    model_config = ConfigDict(frozen=True)

    stage: Stage
    display_name: str
    ordinal: int
    dependencies: dict[str, Stage] = {}

    @property
    def dependency_keys(self) -> list[str]:
        return list(self.dependencies)

    @property
    def dependency_count(self) -> int:
        return len(self.dependencies)


DEFAULT_STAGE_DEFINITIONS: list[StageDefinition] = [
    StageDefinition(
        stage=Stage.CORPUS,
        display_name="Corpus",
        ordinal=0,
    ),
    StageDefinition(
        stage=Stage.SAMPLE,
        display_name="Sample",
        ordinal=1,
        dependencies={CORPUS_KEY: Stage.CORPUS},
    ),
    StageDefinition(
        stage=Stage.CONFIG,
        display_name="Config",
        ordinal=2,
        dependencies={SAMPLE_KEY: Stage.SAMPLE},
    ),
    StageDefinition(
        stage=Stage.EXPERIMENT,
        display_name="Experiment",
        ordinal=3,
        dependencies={SAMPLE_KEY: Stage.SAMPLE, CONFIG_KEY: Stage.CONFIG},
    ),
]

STAGE_DEFINITIONS: dict[Stage, StageDefinition] = {
    d.stage: d for d in DEFAULT_STAGE_DEFINITIONS
}
