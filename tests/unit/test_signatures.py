"""Tests for signature helpers and the SignatureAccumulator."""

from __future__ import annotations

import hashlib

import pytest

from labcache.core.accumulator import NoDataError, SignatureAccumulator
from labcache.core.hasher import (
    data_signature,
    normalize_signature,
    sha512_hex,
    signatures_equal,
    validate_data,
)


class TestSignatureHelpers:
    def test_normalize_lowercases(self):
        assert normalize_signature("ABCdef01") == "abcdef01"

    def test_equal_ignores_case(self):
        sig = sha512_hex(b"data")
        assert signatures_equal(sig, sig.upper())

    def test_unequal_signatures(self):
        assert not signatures_equal(sha512_hex(b"a"), sha512_hex(b"b"))

    def test_data_signature_is_sha512(self):
        assert data_signature(b"hello") == hashlib.sha512(b"hello").hexdigest()
        assert len(data_signature(b"hello")) == 128

    def test_validate_data(self):
        target = hashlib.sha512(b"query log").hexdigest().upper()
        assert validate_data(b"query log", target) is True
        assert validate_data(b"other log", target) is False


class TestSignatureAccumulator:
    def test_finalize_without_data_fails(self):
        with pytest.raises(NoDataError):
            SignatureAccumulator().finalize()

    def test_add_returns_independent_signature(self):
        acc = SignatureAccumulator()
        acc.add(b"\x01\x02\x03\x04")
        second = acc.add(b"\x05\x06\x07\x08")
        # Not influenced by what was added before
        assert second == hashlib.sha512(b"\x05\x06\x07\x08").hexdigest()

    def test_per_item_signatures_differ(self):
        acc = SignatureAccumulator()
        s1 = acc.add(b"\x01\x02\x03\x04")
        s2 = acc.add(b"\x05\x06\x07\x08")
        assert s1 != s2
        final = acc.finalize()
        assert final not in (s1, s2)

    def test_finalize_is_hash_of_concatenation(self):
        acc = SignatureAccumulator()
        acc.add(b"first ")
        acc.add(b"second")
        assert acc.finalize() == hashlib.sha512(b"first second").hexdigest()

    def test_finalize_is_repeatable(self):
        acc = SignatureAccumulator()
        acc.add(b"blob")
        assert acc.finalize() == acc.finalize()

    def test_same_sequence_same_signature(self):
        blobs = [b"alpha", b"beta", b"gamma"]
        a, b = SignatureAccumulator(), SignatureAccumulator()
        for blob in blobs:
            a.add(blob)
            b.add(blob)
        assert a.finalize() == b.finalize()

    def test_order_changes_signature(self):
        a, b = SignatureAccumulator(), SignatureAccumulator()
        for blob in [b"alpha", b"beta"]:
            a.add(blob)
        for blob in [b"beta", b"alpha"]:
            b.add(blob)
        assert a.finalize() != b.finalize()

    def test_empty_blob_counts_as_data(self):
        acc = SignatureAccumulator()
        assert acc.add(b"") == hashlib.sha512(b"").hexdigest()
        assert acc.finalize() == hashlib.sha512(b"").hexdigest()
        assert acc.count == 1

    def test_signatures_are_lowercase(self):
        acc = SignatureAccumulator()
        sig = acc.add(b"data")
        assert sig == sig.lower()
        assert acc.finalize() == acc.finalize().lower()
