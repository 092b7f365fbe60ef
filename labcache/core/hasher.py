"""Canonical SHA-512 signatures for cache artifacts.

A signature is the lowercase hex encoding of a SHA-512 digest.  Signatures
read from disk or from experiment definitions are normalized once, on the
way in; after that they are compared as plain strings.
"""

from __future__ import annotations

import hashlib
from typing import Annotated

from pydantic import AfterValidator


def normalize_signature(raw: str) -> str:
    """Put a signature string into canonical (lowercase) form."""
    return raw.lower()


def signatures_equal(a: str, b: str) -> bool:
    """Compare two signatures on their normalized forms."""
    return normalize_signature(a) == normalize_signature(b)


def sha512_hex(data: bytes) -> str:
    """Return the SHA-512 hex digest of raw bytes."""
    return hashlib.sha512(data).hexdigest()


def data_signature(data: bytes) -> str:
    """Signature of a single blob, independent of any other data."""
    return normalize_signature(sha512_hex(data))


def validate_data(data: bytes, target_signature: str) -> bool:
    """Whether ``data`` hashes to ``target_signature``."""
    return data_signature(data) == normalize_signature(target_signature)


# Field type for pydantic models: normalized at validation time.
Signature = Annotated[str, AfterValidator(normalize_signature)]
