from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z


class RateLimit(db.Model):
    """
    Hit counter per (client ip, request path).

    The window is expiry based: every recorded hit pushes expires_at out by
    the configured expiry, and a row past its expiry counts as zero.
    """
    __tablename__ = "rate_limits"
    __table_args__ = (
        db.UniqueConstraint("ip_address", "path", name="uq_rate_limits_ip_path"),
        db.Index("ix_rate_limits_expires_at", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ip_address = db.Column(db.String(64), nullable=False)
    path = db.Column(db.String(255), nullable=False)
    hit_count = db.Column(db.Integer, nullable=False, default=1)
    expires_at = db.Column(db.DateTime, nullable=False)


class JobSchedule(db.Model):
    """Lease row: last time any replica started the named job."""
    __tablename__ = "job_schedule"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(64), nullable=False, unique=True)
    last_run_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "job_name": self.job_name,
            "last_run_at": to_utc_z(self.last_run_at),
        }
