# Overview: Service-layer operations for maintenance; purges expired credentials and codes.

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import PasswordReset, PendingUser, RefreshToken
from marketplace.time_utils import utcnow

RETENTION = timedelta(days=30)


def purge_expired_refresh_tokens(*, retention: timedelta = RETENTION) -> int:
    """Delete refresh tokens that expired more than `retention` ago."""
    cutoff = utcnow() - retention
    deleted = db.session.query(RefreshToken).filter(
        RefreshToken.expires_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def purge_expired_password_resets(*, retention: timedelta = RETENTION) -> int:
    cutoff = utcnow() - retention
    deleted = db.session.query(PasswordReset).filter(
        PasswordReset.expires_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def purge_expired_registrations() -> int:
    """Delete pending registrations that are used or past expiry."""
    deleted = db.session.query(PendingUser).filter(
        or_(PendingUser.used.is_(True), PendingUser.expires_at < utcnow())
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
