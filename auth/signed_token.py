from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json


class InvalidTokenError(RuntimeError):
    pass


def derive_key(session_secret: str) -> str:
    """Derive the cookie signing key from the configured session secret."""
    return hashlib.sha256(f"storefront-session:{session_secret}".encode()).hexdigest()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def encode(payload: dict, key: str) -> str:
    data = json.dumps(payload, separators=(",", ":")).encode()
    sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    return f"{_b64encode(data)}.{_b64encode(sig)}"


def decode(token: str, key: str) -> dict:
    parts = token.split(".", 1)
    if len(parts) != 2:
        raise InvalidTokenError("Invalid token format.")
    data_b64, sig_b64 = parts
    try:
        data = _b64decode(data_b64)
        actual_sig = _b64decode(sig_b64)
    except (binascii.Error, ValueError) as error:
        raise InvalidTokenError("Invalid token encoding.") from error

    expected_sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    if not hmac.compare_digest(expected_sig, actual_sig):
        raise InvalidTokenError("Token signature verification failed.")

    try:
        payload = json.loads(data)
    except ValueError as error:
        raise InvalidTokenError("Invalid token payload.") from error
    if not isinstance(payload, dict):
        raise InvalidTokenError("Invalid token payload.")
    return payload
