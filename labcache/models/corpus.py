"""Corpus archive models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from labcache.core.hasher import Signature


class ArchiveFile(BaseModel):
    """A compressed shard of the corpus and the signature it must hash to.

    ``name`` is relative to the corpus root.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    file_signature: Signature = Field(alias="file-signature")
