# Overview: Password reset codes.

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..errors import InvalidInput
from ..extensions import db
from ..models import PasswordReset
from . import auth_service, refresh_service
from .concurrency import lock_for_update
from .hashing import RESET_CODE_ALPHABET, constant_time_equals, generate_code, hmac_sha256_hex
from marketplace.time_utils import as_naive_utc, utcnow

RESET_TTL = timedelta(minutes=15)


def _hash_code(user_id: int, code: str) -> str:
    return hmac_sha256_hex(f"{user_id}:{code}", current_app.config["HMAC_SECRET"])


def request_reset(email) -> str | None:
    """
    Create a reset code for email.

    Returns the plaintext code, or None when no credentialed user has that
    email. Callers answer the same way in both cases.
    """
    email = auth_service.normalize_email(email)
    user = auth_service.find_by_email(email)
    if user is None or not user.password_hash:
        current_app.logger.info("Password reset requested for unknown email %s", email)
        return None

    code = generate_code(RESET_CODE_ALPHABET)
    db.session.add(PasswordReset(
        user_id=user.id,
        code_hash=_hash_code(user.id, code),
        expires_at=utcnow() + RESET_TTL,
        used=False,
    ))
    db.session.commit()
    return code


def confirm_reset(email, code, password) -> None:
    """
    Replace the password if code matches the user's latest reset code.

    Every refresh token of the user is revoked. Raises InvalidInput on any
    mismatch, expiry or reuse.
    """
    email = auth_service.normalize_email(email)
    auth_service.validate_password_strength(password)
    if not isinstance(code, str) or not code:
        raise InvalidInput("reset_code is required")

    user = auth_service.find_by_email(email)
    if user is None:
        raise InvalidInput(f"invalid reset code for {email}")

    reset = lock_for_update(
        db.session.query(PasswordReset)
        .filter_by(user_id=user.id)
        .order_by(PasswordReset.created_at.desc(), PasswordReset.id.desc())
    ).first()
    if reset is None or reset.used or as_naive_utc(reset.expires_at) < utcnow():
        db.session.rollback()
        raise InvalidInput(f"no usable reset code for {email}")
    if not constant_time_equals(reset.code_hash, _hash_code(user.id, code.strip())):
        db.session.rollback()
        raise InvalidInput(f"invalid reset code for {email}")

    reset.used = True
    user.password_hash = auth_service.hash_password(password)
    refresh_service.revoke_all(user.id, commit=False)
    db.session.commit()
