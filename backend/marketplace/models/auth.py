from __future__ import annotations

from ..extensions import db
from ..services.id_generator import generate_id
from marketplace.time_utils import to_utc_z, utcnow

ROLE_GUEST = "guest"
ROLE_USER = "user"
ROLE_ADMIN = "admin"

ROLE_LEVELS = {ROLE_GUEST: 0, ROLE_USER: 1, ROLE_ADMIN: 2}


class User(db.Model):
    """
    Marketplace account.

    Guests have neither email nor password_hash; they own carts and orders
    like any other user and can later be promoted by setting credentials.
    Emails are stored lowercased so uniqueness is case-insensitive.
    """
    __tablename__ = "users"

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    email = db.Column(db.String(254), nullable=True, unique=True)
    password_hash = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def has_minimum_role(self, role: str) -> bool:
        return ROLE_LEVELS.get(self.role, -1) >= ROLE_LEVELS[role]

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "email": self.email,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PendingUser(db.Model):
    """In-flight registration awaiting its emailed confirmation code."""
    __tablename__ = "pending_users"

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    email = db.Column(db.String(254), nullable=False, unique=True)
    code_hash = db.Column(db.String(64), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class PasswordReset(db.Model):
    __tablename__ = "password_reset_codes"
    __table_args__ = (
        db.Index("ix_password_reset_codes_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    code_hash = db.Column(db.String(64), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class UserInvite(db.Model):
    """
    Admin invitation for a credential-less user. The code is looked up by
    its HMAC alone, so code_hash is unique.
    """
    __tablename__ = "user_invites"

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    code_hash = db.Column(db.String(64), nullable=False, unique=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class RefreshToken(db.Model):
    """
    Server-side record of a refresh token.

    SECURITY: only the HMAC-SHA256 of the secret is stored. The plaintext
    secret is returned once, in the response that issued it.
    """
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        db.Index("ix_refresh_tokens_user_id", "user_id"),
    )

    id = db.Column(db.BigInteger, primary_key=True, default=generate_id, autoincrement=False)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked = db.Column(db.Boolean, nullable=False, default=False)
    last_used = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("refresh_tokens", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "expires_at": to_utc_z(self.expires_at),
            "revoked": self.revoked,
            "last_used": to_utc_z(self.last_used),
            "created_at": to_utc_z(self.created_at),
        }
