"""Tests for API-key construction and Ed25519 request signing."""

from __future__ import annotations

import base64
import hashlib

import pytest
from nacl.signing import SigningKey

from klbrest.auth.apikey import ApiKey, canonical_query
from klbrest.exceptions import InvalidKeyError

SEED = bytes(range(32))


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _unb64url(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_seed_secret(self, seed_secret: str) -> None:
        key = ApiKey("key-1", seed_secret)
        assert key.key_id == "key-1"
        assert key.public_key == _b64url(bytes(SigningKey(SEED).verify_key))

    def test_standard_base64_secret(self) -> None:
        key = ApiKey("key-1", base64.b64encode(SEED).decode("ascii"))
        assert key.public_key == ApiKey("key-1", _b64url(SEED)).public_key

    def test_keypair_secret(self) -> None:
        pair = SEED + bytes(SigningKey(SEED).verify_key)
        key = ApiKey("key-1", _b64url(pair))
        assert key.public_key == _b64url(pair[32:])

    def test_keypair_with_wrong_public_half(self) -> None:
        with pytest.raises(InvalidKeyError, match="does not match"):
            ApiKey("key-1", _b64url(SEED + bytes(32)))

    @pytest.mark.parametrize("length", [0, 16, 31, 33, 63, 65])
    def test_wrong_length(self, length: int) -> None:
        secret = _b64url(bytes(length)) or "AA"
        with pytest.raises(InvalidKeyError):
            ApiKey("key-1", secret)

    @pytest.mark.parametrize("secret", ["not base64!!", "@@@@", "abc$def"])
    def test_not_base64(self, secret: str) -> None:
        with pytest.raises(InvalidKeyError):
            ApiKey("key-1", secret)

    def test_empty_secret(self) -> None:
        with pytest.raises(InvalidKeyError, match="empty"):
            ApiKey("key-1", "   ")

    def test_empty_key_id(self, seed_secret: str) -> None:
        with pytest.raises(InvalidKeyError, match="identifier"):
            ApiKey("", seed_secret)

    def test_from_source_env(self, monkeypatch: pytest.MonkeyPatch, seed_secret: str) -> None:
        monkeypatch.setenv("KLB_API_SECRET", seed_secret)
        key = ApiKey.from_source("key-1", "env:KLB_API_SECRET")
        assert key.public_key == ApiKey("key-1", seed_secret).public_key

    def test_repr_redacts_secret(self, seed_secret: str) -> None:
        text = repr(ApiKey("key-1", seed_secret))
        assert "key-1" in text
        assert seed_secret not in text


# ---------------------------------------------------------------------------
# Canonical query
# ---------------------------------------------------------------------------


class TestCanonicalQuery:
    def test_sorted_by_key(self) -> None:
        assert canonical_query({"b": "2", "a": "1"}) == "a=1&b=2"

    def test_excludes_signature(self) -> None:
        assert canonical_query({"a": "1", "_sign": "zzz"}) == "a=1"

    def test_form_encoding(self) -> None:
        assert canonical_query({"q": "x y/z~*"}) == "q=x+y%2Fz%7E*"

    def test_json_param(self) -> None:
        assert canonical_query({"_": '{"a":1}'}) == "_=%7B%22a%22%3A1%7D"

    def test_bools(self) -> None:
        assert canonical_query({"flag": True}) == "flag=true"


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class TestSigning:
    def test_payload_layout(self) -> None:
        payload = ApiKey.signing_payload("get", "Users/Get", {"b": "2", "a": "1"}, b"{}")
        assert payload == b"\x00".join(
            [b"GET", b"Users/Get", b"a=1&b=2", hashlib.sha256(b"{}").digest()]
        )

    def test_deterministic(self, seed_secret: str) -> None:
        key = ApiKey("key-1", seed_secret)
        first = key.sign("GET", "Users/Get", {"_": "{}"}, timestamp=1_700_000_000)
        second = key.sign("GET", "Users/Get", {"_": "{}"}, timestamp=1_700_000_000)
        assert first == second

    def test_is_unpadded_base64url(self, seed_secret: str) -> None:
        signature = ApiKey("key-1", seed_secret).sign("GET", "p", {}, timestamp=1)
        assert "=" not in signature
        assert len(_unb64url(signature)) == 64

    @pytest.mark.parametrize(
        "change",
        [
            {"method": "POST"},
            {"path": "Users/Set"},
            {"params": {"_": '{"id":2}'}},
            {"timestamp": 1_700_000_001},
            {"body": b"x"},
            {"nonce": "other"},
        ],
    )
    def test_any_change_alters_signature(self, seed_secret: str, change: dict) -> None:
        key = ApiKey("key-1", seed_secret)
        base = {
            "method": "GET",
            "path": "Users/Get",
            "params": {"_": '{"id":1}'},
            "timestamp": 1_700_000_000,
            "body": b"",
            "nonce": "n",
        }
        assert key.sign(**base) != key.sign(**{**base, **change})

    def test_signature_verifies_with_public_key(self, seed_secret: str) -> None:
        key = ApiKey("key-1", seed_secret)
        signature = key.sign("GET", "Users/Get", {"_": "{}"}, timestamp=42, nonce="n")
        payload = ApiKey.signing_payload(
            "GET",
            "Users/Get",
            {"_": "{}", "_key": "key-1", "_time": "42", "_nonce": "n"},
        )
        SigningKey(SEED).verify_key.verify(payload, _unb64url(signature))


class TestSignedParams:
    def test_adds_auth_params(self, seed_secret: str) -> None:
        key = ApiKey("key-1", seed_secret)
        params = key.signed_params("GET", "Users/Get", {"_": "{}"}, timestamp=42, nonce="n")
        assert params["_"] == "{}"
        assert params["_key"] == "key-1"
        assert params["_time"] == "42"
        assert params["_nonce"] == "n"
        assert params["_sign"] == key.sign("GET", "Users/Get", {"_": "{}"}, 42, nonce="n")

    def test_defaults_fill_time_and_nonce(self, seed_secret: str) -> None:
        key = ApiKey("key-1", seed_secret)
        first = key.signed_params("GET", "p", {})
        second = key.signed_params("GET", "p", {})
        assert first["_time"].isdigit()
        assert first["_nonce"] != second["_nonce"]
        assert first["_sign"] != second["_sign"]

    def test_verify_roundtrip(self, seed_secret: str) -> None:
        key = ApiKey("key-1", seed_secret)
        params = key.signed_params("POST", "Users/Set", {}, body=b'{"a":1}')
        assert key.verify("POST", "Users/Set", params, b'{"a":1}')

    def test_verify_rejects_tampering(self, seed_secret: str) -> None:
        key = ApiKey("key-1", seed_secret)
        params = key.signed_params("POST", "Users/Set", {}, body=b'{"a":1}')
        assert not key.verify("POST", "Users/Set", params, b'{"a":2}')
        assert not key.verify("POST", "Users/Set", {**params, "_time": "0"}, b'{"a":1}')

    def test_verify_without_signature(self, seed_secret: str) -> None:
        assert not ApiKey("key-1", seed_secret).verify("GET", "p", {"_key": "key-1"})

    def test_verify_rejects_other_key(self, seed_secret: str) -> None:
        params = ApiKey("key-1", seed_secret).signed_params("GET", "p", {})
        other = ApiKey("key-1", _b64url(bytes(32)))
        assert not other.verify("GET", "p", params)
