# Overview: Service-layer operations for accounts and credentials.

"""
Account and credential handling.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost BCRYPT_ROUNDS, 12 by default)
- Passwords need 8+ characters with a letter and a digit; bcrypt only
  reads 72 bytes so longer passwords are refused
- Emails are normalized to lowercase before storage and lookup
"""

import re

import bcrypt
from flask import current_app

from ..errors import AlreadyExists, Forbidden, InvalidInput
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_GUEST, ROLE_USER
from . import refresh_service, token_service

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@([a-zA-Z0-9-]+\.)+[a-zA-Z]{2,}$")
MAX_EMAIL_LENGTH = 254
MAX_PASSWORD_BYTES = 72


class PasswordValidationError(InvalidInput):
    """Password doesn't meet strength requirements."""


def normalize_email(email) -> str:
    """Lowercase and validate an email address. Raises InvalidInput."""
    if not isinstance(email, str):
        raise InvalidInput("email is required")
    email = email.strip().lower()
    if not email or len(email) > MAX_EMAIL_LENGTH or " " in email or not EMAIL_PATTERN.match(email):
        raise InvalidInput(f"invalid email address {email!r}")
    return email


def validate_password_strength(password) -> None:
    if not isinstance(password, str):
        raise PasswordValidationError("password is required")
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordValidationError("Password must be at most 72 bytes")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash or not isinstance(password, str):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        current_app.logger.warning("Malformed password hash encountered")
        return False


def find_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=email.strip().lower()).first()


def create_user(email: str, password: str, role: str = ROLE_USER, *, commit: bool = True) -> User:
    """Create a credentialed user. Raises InvalidInput or AlreadyExists."""
    email = normalize_email(email)
    validate_password_strength(password)
    if role not in (ROLE_USER, ROLE_ADMIN):
        raise InvalidInput(f"unknown role {role!r}")
    if find_by_email(email):
        raise AlreadyExists(f"user {email} already exists")

    user = User(email=email, password_hash=hash_password(password), role=role)
    db.session.add(user)
    if commit:
        db.session.commit()
    return user


def list_users(*, page: int = 1, limit: int = 100) -> tuple[list[User], int]:
    """Admin listing, oldest first. Returns (users, total_count)."""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    query = db.session.query(User)
    total = query.count()
    users = query.order_by(User.created_at, User.id).offset((page - 1) * limit).limit(limit).all()
    return users, total


def email_exists(email) -> bool:
    return find_by_email(normalize_email(email)) is not None


def authenticate(email, password) -> User | None:
    """Return the user for valid credentials, else None. Guests never match."""
    if not isinstance(email, str) or not isinstance(password, str):
        return None
    user = find_by_email(email)
    if not user or user.role == ROLE_GUEST:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def create_guest() -> User:
    user = User(email=None, password_hash=None, role=ROLE_GUEST)
    db.session.add(user)
    db.session.commit()
    return user


def promote_guest(user: User, email, password) -> User:
    """Turn a guest into a regular user, keeping its carts and orders."""
    if user.role != ROLE_GUEST:
        raise Forbidden(f"user {user.id} is not a guest")
    email = normalize_email(email)
    validate_password_strength(password)
    if find_by_email(email):
        raise AlreadyExists(f"user {email} already exists")

    user.email = email
    user.password_hash = hash_password(password)
    user.role = ROLE_USER
    db.session.commit()
    return user


def issue_tokens(user: User) -> dict:
    """Access + refresh token pair for a freshly authenticated user."""
    _, refresh_secret = refresh_service.create_refresh_token(user.id)
    return {
        "access_token": token_service.issue_access_token(user),
        "refresh_token": refresh_secret,
    }
