# Overview: Issue and verify RS256-signed access tokens.

"""
Access tokens.

Short-lived JWTs signed with the server's RSA private key. Verification
pins the algorithm to RS256, so a token signed with a symmetric algorithm
(for example HS256 keyed with the public key) is rejected even if its
signature would otherwise check out.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import current_app

from ..errors import Unauthenticated
from ..config import ConfigError

ALGORITHM = "RS256"
REQUIRED_CLAIMS = ["sub", "role", "iat", "exp"]


def _private_key() -> str:
    key = current_app.config.get("JWT_PRIVATE_KEY")
    if not key:
        raise ConfigError("JWT_PRIVATE_KEY is not configured")
    return key


def _public_key() -> str:
    key = current_app.config.get("JWT_PUBLIC_KEY")
    if not key:
        raise ConfigError("JWT_PUBLIC_KEY is not configured")
    return key


def load_keys(private_pem: str, public_pem: str) -> None:
    """Parse both PEMs; raises ConfigError when either is unusable."""
    try:
        private_key = serialization.load_pem_private_key(private_pem.encode("utf-8"), password=None)
        public_key = serialization.load_pem_public_key(public_pem.encode("utf-8"))
    except (ValueError, TypeError) as exc:
        raise ConfigError("JWT keys are not valid PEM") from exc
    if not isinstance(private_key, rsa.RSAPrivateKey) or not isinstance(public_key, rsa.RSAPublicKey):
        raise ConfigError("JWT keys must be RSA keys")


def generate_key_pair(key_size: int = 2048) -> tuple[str, str]:
    """Return (private_pem, public_pem) for a fresh RSA key."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return private_pem, public_pem


def issue_access_token(user, *, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    expiry = timedelta(seconds=current_app.config["JWT_EXPIRY"])
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + expiry,
    }
    return jwt.encode(payload, _private_key(), algorithm=ALGORITHM)


def verify_access_token(token: str) -> dict:
    """
    Decode and validate an access token.

    Returns the claims. Raises Unauthenticated on a bad signature, wrong
    algorithm, missing claims or expiry.
    """
    try:
        return jwt.decode(
            token,
            _public_key(),
            algorithms=[ALGORITHM],
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError as exc:
        raise Unauthenticated("access token expired", cause=exc)
    except jwt.PyJWTError as exc:
        raise Unauthenticated(f"access token rejected: {exc}", cause=exc)
