# Overview: Email-verified self registration and admin invitations.

"""
Registration flow:

1. register(email): store a pending_users row with the HMAC of a 6-character
   code and a 3 day expiry; the caller emails the code.
2. confirm(email, code, password): check the code, mark it used and create
   the users row in the same transaction.

An expired, unconfirmed registration does not block the email; the stale
pending row is replaced.

Invitations create the users row up front with a role and no password.
confirm_invite(code, password) finds the invitation by the code's HMAC and
sets the password.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyExists, InvalidInput, NotFound
from ..extensions import db
from ..models import PendingUser, User, UserInvite
from ..models.auth import ROLE_ADMIN, ROLE_USER
from . import auth_service
from .concurrency import lock_for_update
from .hashing import REGISTRATION_CODE_ALPHABET, constant_time_equals, generate_code, hmac_sha256_hex
from marketplace.time_utils import as_naive_utc, utcnow

REGISTRATION_TTL = timedelta(days=3)
INVITE_TTL = timedelta(hours=72)


def _hash_code(email: str, code: str) -> str:
    return hmac_sha256_hex(f"{email}:{code}", current_app.config["HMAC_SECRET"])


def register(email) -> tuple[PendingUser, str]:
    """
    Start a registration. Returns (pending_row, plaintext_code).

    Raises InvalidInput for a bad email and AlreadyExists when the email
    belongs to a user or to a live pending registration.
    """
    email = auth_service.normalize_email(email)
    now = utcnow()

    if db.session.query(User.id).filter_by(email=email).first():
        raise AlreadyExists(f"user {email} already exists")

    pending = lock_for_update(db.session.query(PendingUser).filter_by(email=email)).first()
    if pending is not None:
        if not pending.used and as_naive_utc(pending.expires_at) > now:
            db.session.rollback()
            raise AlreadyExists(f"registration for {email} already pending")
        db.session.delete(pending)
        db.session.flush()

    code = generate_code(REGISTRATION_CODE_ALPHABET)
    pending = PendingUser(
        email=email,
        code_hash=_hash_code(email, code),
        expires_at=now + REGISTRATION_TTL,
        used=False,
    )
    db.session.add(pending)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise AlreadyExists(f"registration for {email} already pending", cause=exc)
    return pending, code


def confirm(email, code, password) -> User:
    """
    Finish a registration and create the user.

    Raises NotFound when no usable pending registration matches (missing,
    used, expired or wrong code), InvalidInput for a weak password and
    AlreadyExists if the email was taken in the meantime.
    """
    email = auth_service.normalize_email(email)
    auth_service.validate_password_strength(password)
    if not isinstance(code, str) or not code:
        raise NotFound(f"no registration code supplied for {email}")

    pending = lock_for_update(db.session.query(PendingUser).filter_by(email=email)).first()
    if pending is None or pending.used or as_naive_utc(pending.expires_at) < utcnow():
        db.session.rollback()
        raise NotFound(f"no active registration for {email}")
    if not constant_time_equals(pending.code_hash, _hash_code(email, code.strip().upper())):
        db.session.rollback()
        raise NotFound(f"registration code mismatch for {email}")

    pending.used = True
    user = User(email=email, password_hash=auth_service.hash_password(password), role=ROLE_USER)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise AlreadyExists(f"user {email} already exists", cause=exc)
    return user


# =============================================================================
# Admin invitations
# =============================================================================


def _hash_invite_code(code: str) -> str:
    return hmac_sha256_hex(f"invite:{code}", current_app.config["HMAC_SECRET"])


def invite(email, role) -> tuple[User, str]:
    """
    Create a credential-less user with role and a 72 hour invite code.
    Returns (user, plaintext_code).

    A user whose invitations all lapsed without being accepted is invited
    again with a fresh code. Raises InvalidInput for a bad email or role and
    AlreadyExists when the email has credentials or a live invitation.
    """
    email = auth_service.normalize_email(email)
    if role not in (ROLE_USER, ROLE_ADMIN):
        raise InvalidInput(f"unknown role {role!r}")
    now = utcnow()

    user = lock_for_update(db.session.query(User).filter_by(email=email)).first()
    if user is not None:
        if user.password_hash:
            db.session.rollback()
            raise AlreadyExists(f"user {email} already exists")
        invites = db.session.query(UserInvite).filter_by(user_id=user.id).all()
        if any(not i.used and as_naive_utc(i.expires_at) > now for i in invites):
            db.session.rollback()
            raise AlreadyExists(f"invitation for {email} already pending")
        for stale in invites:
            db.session.delete(stale)
        user.role = role
    else:
        if db.session.query(PendingUser.id).filter(
            PendingUser.email == email,
            PendingUser.used.is_(False),
            PendingUser.expires_at > now,
        ).first():
            db.session.rollback()
            raise AlreadyExists(f"registration for {email} already pending")
        user = User(email=email, password_hash=None, role=role)
        db.session.add(user)
    db.session.flush()

    code = generate_code(REGISTRATION_CODE_ALPHABET)
    db.session.add(UserInvite(
        user_id=user.id,
        code_hash=_hash_invite_code(code),
        expires_at=now + INVITE_TTL,
        used=False,
    ))
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise AlreadyExists(f"invitation for {email} could not be stored", cause=exc)
    return user, code


def confirm_invite(code, password) -> User:
    """
    Accept an invitation by setting the user's password.

    Raises InvalidInput for a weak password or an unknown, used or expired
    code.
    """
    auth_service.validate_password_strength(password)
    if not isinstance(code, str) or not code.strip():
        raise InvalidInput("registration_code is required")

    pending = lock_for_update(
        db.session.query(UserInvite).filter_by(code_hash=_hash_invite_code(code.strip().upper()))
    ).first()
    if pending is None or pending.used or as_naive_utc(pending.expires_at) < utcnow():
        db.session.rollback()
        raise InvalidInput("no usable invitation for code")

    user = db.session.get(User, pending.user_id)
    if user is None or user.password_hash:
        db.session.rollback()
        raise InvalidInput(f"invitation {pending.id} no longer applies")

    pending.used = True
    user.password_hash = auth_service.hash_password(password)
    db.session.commit()
    return user
