# Overview: Service-layer operations for refresh tokens; issue, verify, rotate and revoke.

"""
Refresh Token Management

SECURITY FEATURES:
- 32 random bytes per token, presented to the client as hex
- Stored as HMAC-SHA256(secret, HMAC_SECRET); the secret is never persisted
- Verification locks the row so concurrent rotations of one token serialize
- Rotation on use: the presented token is revoked and a new one issued
- Logout revokes every token of the user
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..errors import Expired, InvalidToken, Revoked
from ..extensions import db
from ..models import RefreshToken, User
from .concurrency import lock_for_update
from .hashing import generate_secret, hmac_sha256_hex
from marketplace.time_utils import as_naive_utc, utcnow


def hash_token(secret: str) -> str:
    return hmac_sha256_hex(secret, current_app.config["HMAC_SECRET"])


def create_refresh_token(user_id: int, *, commit: bool = True) -> tuple[RefreshToken, str]:
    """
    Create a refresh token for user_id.

    Returns (record, plaintext_secret).
    """
    secret = generate_secret(32)
    now = utcnow()
    record = RefreshToken(
        user_id=user_id,
        token_hash=hash_token(secret),
        expires_at=now + timedelta(seconds=current_app.config["REFRESH_EXPIRY"]),
        revoked=False,
        last_used=now,
        created_at=now,
    )
    db.session.add(record)
    if commit:
        db.session.commit()
    return record, secret


def _locked_record(secret: str) -> RefreshToken:
    record = lock_for_update(
        db.session.query(RefreshToken).filter_by(token_hash=hash_token(secret))
    ).first()
    if record is None:
        db.session.rollback()
        raise InvalidToken("unknown refresh token")
    if record.revoked:
        db.session.rollback()
        raise Revoked(f"refresh token {record.id} is revoked")
    if as_naive_utc(record.expires_at) < utcnow():
        db.session.rollback()
        raise Expired(f"refresh token {record.id} expired")
    return record


def verify_refresh_token(secret: str) -> User:
    """
    Validate secret and touch last_used.

    Raises InvalidToken, Revoked or Expired.
    """
    record = _locked_record(secret)
    record.last_used = utcnow()
    user = record.user
    db.session.commit()
    return user


def rotate_refresh_token(secret: str) -> tuple[User, str]:
    """
    Exchange a valid refresh token for a new one.

    The presented token is revoked in the same transaction that creates its
    replacement, so it can never be used twice.
    """
    record = _locked_record(secret)
    record.last_used = utcnow()
    record.revoked = True
    user = record.user
    _, new_secret = create_refresh_token(user.id, commit=False)
    db.session.commit()
    return user, new_secret


def revoke_all(user_id: int, *, commit: bool = True) -> int:
    """Revoke every refresh token for user_id. Returns rows affected."""
    updated = db.session.query(RefreshToken).filter(
        RefreshToken.user_id == user_id,
        RefreshToken.revoked.is_(False),
    ).update({"revoked": True}, synchronize_session="fetch")
    if commit:
        db.session.commit()
    return updated
