"""Streaming signature accumulator.

One pass over an ordered sequence of blobs produces two things: the
signature of each blob on its own (returned from ``add``) and the
cumulative signature of the whole sequence (returned from ``finalize``).
The corpus verifier relies on both to check every archive individually
while fingerprinting the corpus, without reading any archive twice.
"""

from __future__ import annotations

import hashlib

from labcache.core.hasher import data_signature, normalize_signature


class NoDataError(RuntimeError):
    """Raised when a signature is requested before any data was added."""


class SignatureAccumulator:
    """Append-only SHA-512 accumulator.

    Order is part of the fingerprint: the same blobs added in a different
    order produce a different cumulative signature.  There is no way to
    remove or reorder data once added.
    """

    def __init__(self) -> None:
        self._hash = hashlib.sha512()
        self._has_data = False
        self._count = 0

    @property
    def count(self) -> int:
        """Number of blobs added so far."""
        return self._count

    def add(self, data: bytes) -> str:
        """Fold ``data`` into the running hash and return its own signature.

        An empty blob still counts as data.
        """
        self._has_data = True
        self._count += 1
        self._hash.update(data)
        return data_signature(data)

    def finalize(self) -> str:
        """Return the cumulative signature of every blob added so far.

        Does not reset the accumulator; repeated calls return the same value.
        """
        if not self._has_data:
            raise NoDataError("No data accumulated in signature accumulator")
        # hexdigest() works on a copy of the internal state.
        return normalize_signature(self._hash.hexdigest())
