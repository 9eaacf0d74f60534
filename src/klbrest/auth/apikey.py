"""API-key authentication with Ed25519 request signing.

An :class:`ApiKey` pairs a key identifier with an Ed25519 private key. Every
request sent while it is active carries four extra query parameters:

* ``_key``   -- the key identifier
* ``_time``  -- Unix time in seconds
* ``_nonce`` -- a random UUID4 so that identical calls sign differently
* ``_sign``  -- unpadded base64url Ed25519 signature over the payload below

Signed payload (``\\x00`` separated)::

    METHOD \\x00 path \\x00 sorted-form-encoded-query \\x00 sha256(body)

The query excludes ``_sign`` itself and is sorted by key, then value. Ed25519
is deterministic, so identical inputs always produce identical signatures.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import time
import uuid
from typing import Any, Mapping, Optional
from urllib.parse import quote_plus

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey

from klbrest.config import resolve_key_secret
from klbrest.exceptions import InvalidKeyError

SIGNATURE_PARAM = "_sign"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64_decode(secret: str) -> bytes:
    """Decode unpadded base64url, falling back to standard base64."""
    text = secret.strip()
    try:
        padded = text + "=" * (-len(text) % 4)
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError):
        pass
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidKeyError(f"API key secret is not valid base64: {exc}") from exc


def _form_quote(text: str) -> str:
    # application/x-www-form-urlencoded: alphanumerics and "*-._" stay literal
    return quote_plus(text, safe="*").replace("~", "%7E")


def canonical_query(params: Mapping[str, Any]) -> str:
    """Form-encode *params* sorted by key then value, without ``_sign``."""
    pairs = sorted(
        (str(key), _param_text(value))
        for key, value in params.items()
        if key != SIGNATURE_PARAM
    )
    return "&".join(f"{_form_quote(k)}={_form_quote(v)}" for k, v in pairs)


def _param_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ApiKey:
    """Key identifier plus Ed25519 signing key, validated once at construction.

    Args:
        key_id: The API key identifier issued by the server.
        secret: The base64 (url-safe unpadded, or standard) encoded private
            key: a 32-byte seed or a 64-byte seed+public-key pair.

    Raises:
        InvalidKeyError: If *key_id* is empty or *secret* is not a valid
            Ed25519 private key encoding.

    Example::

        key = ApiKey("key-12345", "nWGxne_9WmC6hEr0kuwsxERJxWl7MmkZcDusAxyuf2A")
        params = key.signed_params("GET", "Users/Get", {"_": "{}"})
    """

    def __init__(self, key_id: str, secret: str) -> None:
        if not key_id:
            raise InvalidKeyError("API key identifier is empty")
        if not isinstance(secret, str) or not secret.strip():
            raise InvalidKeyError("API key secret is empty")

        decoded = _b64_decode(secret)
        if len(decoded) not in (32, 64):
            raise InvalidKeyError(
                f"Invalid key length: expected 32 or 64 bytes, got {len(decoded)}"
            )

        signing_key = SigningKey(decoded[:32])
        if len(decoded) == 64 and bytes(signing_key.verify_key) != decoded[32:]:
            raise InvalidKeyError("Ed25519 keypair public half does not match its seed")

        self._key_id = key_id
        self._signing_key = signing_key

    @classmethod
    def from_source(cls, key_id: str, source: str) -> ApiKey:
        """Build a key whose secret comes from ``env:VAR``, ``file:/path`` or a literal."""
        return cls(key_id, resolve_key_secret(source))

    @property
    def key_id(self) -> str:
        return self._key_id

    @property
    def public_key(self) -> str:
        """The Ed25519 public key, unpadded base64url."""
        return _b64url_encode(bytes(self._signing_key.verify_key))

    # ------------------------------------------------------------------ #
    # Signing
    # ------------------------------------------------------------------ #

    @staticmethod
    def signing_payload(
        method: str,
        path: str,
        params: Mapping[str, Any],
        body: bytes = b"",
    ) -> bytes:
        """Build the exact byte string that gets signed."""
        return b"\x00".join(
            [
                method.upper().encode("utf-8"),
                path.encode("utf-8"),
                canonical_query(params).encode("utf-8"),
                hashlib.sha256(body).digest(),
            ]
        )

    def sign(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any],
        timestamp: int,
        body: bytes = b"",
        nonce: Optional[str] = None,
    ) -> str:
        """Sign a request and return the ``_sign`` value.

        ``_key``, ``_time`` (*timestamp*) and, when given, ``_nonce`` are
        added to *params* before signing, exactly as
        :meth:`signed_params` puts them on the wire.
        """
        full = self._auth_params(params, timestamp, nonce)
        payload = self.signing_payload(method, path, full, body)
        return _b64url_encode(self._signing_key.sign(payload).signature)

    def signed_params(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any],
        body: bytes = b"",
        timestamp: Optional[int] = None,
        nonce: Optional[str] = None,
    ) -> dict[str, str]:
        """Return *params* plus ``_key``, ``_time``, ``_nonce`` and ``_sign``.

        *timestamp* defaults to the current Unix time and *nonce* to a fresh
        UUID4.
        """
        if timestamp is None:
            timestamp = int(time.time())
        if nonce is None:
            nonce = str(uuid.uuid4())
        full = self._auth_params(params, timestamp, nonce)
        full[SIGNATURE_PARAM] = self.sign(method, path, params, timestamp, body, nonce)
        return full

    def verify(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any],
        body: bytes = b"",
    ) -> bool:
        """Check the ``_sign`` carried in *params* against this key."""
        signature = params.get(SIGNATURE_PARAM)
        if not isinstance(signature, str):
            return False
        try:
            raw = base64.urlsafe_b64decode(signature + "=" * (-len(signature) % 4))
            self._signing_key.verify_key.verify(
                self.signing_payload(method, path, params, body), raw
            )
        except (BadSignatureError, binascii.Error, ValueError):
            return False
        return True

    def _auth_params(
        self,
        params: Mapping[str, Any],
        timestamp: int,
        nonce: Optional[str],
    ) -> dict[str, str]:
        full = {str(k): _param_text(v) for k, v in params.items() if k != SIGNATURE_PARAM}
        full["_key"] = self._key_id
        full["_time"] = str(int(timestamp))
        if nonce is not None:
            full["_nonce"] = nonce
        return full

    def __repr__(self) -> str:
        return f"ApiKey(key_id={self._key_id!r}, signing_key=<redacted>)"
