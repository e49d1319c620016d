# Overview: Keyed hashing helpers for secrets that are stored server-side.

from __future__ import annotations

import hashlib
import hmac
import secrets
import string

REGISTRATION_CODE_ALPHABET = string.ascii_uppercase + string.digits
RESET_CODE_ALPHABET = string.ascii_letters + string.digits
CODE_LENGTH = 6


def hmac_sha256_hex(value: str, key: str) -> str:
    """Deterministic HMAC-SHA256 of value under key, hex encoded."""
    return hmac.new(key.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def generate_secret(nbytes: int = 32) -> str:
    """Opaque random secret presented to clients as hex."""
    return secrets.token_hex(nbytes)


def generate_code(alphabet: str, length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))
