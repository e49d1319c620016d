# Overview: Service-layer operations for per-(ip, path) rate limiting.

"""
Rate limit counters.

A counter row exists per (ip_address, path). record() is a single UPSERT so
concurrent hits on one key serialize on the unique index instead of racing
a read-then-write. Counters reset when their expiry passes: check() treats
an expired row as zero and the next record() restarts it at one.
"""

from __future__ import annotations

from datetime import timedelta

from flask import request
from sqlalchemy import case, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..extensions import db
from ..models import RateLimit
from marketplace.time_utils import utcnow


def check(ip_address: str, path: str) -> int:
    """Current hit count for (ip, path); 0 when absent or expired."""
    now = utcnow()
    count = db.session.execute(
        select(RateLimit.hit_count).where(
            RateLimit.ip_address == ip_address,
            RateLimit.path == path,
            RateLimit.expires_at > now,
        )
    ).scalar_one_or_none()
    return count or 0


def _insert_for_dialect():
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"rate limiting has no upsert for dialect {dialect!r}")


def record(ip_address: str, path: str, expiry: timedelta) -> int:
    """Count one hit and push the expiry out. Returns the new count."""
    now = utcnow()
    expires_at = now + expiry
    table = RateLimit.__table__

    insert = _insert_for_dialect()
    stmt = insert(table).values(
        ip_address=ip_address,
        path=path,
        hit_count=1,
        expires_at=expires_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.ip_address, table.c.path],
        set_={
            "hit_count": case(
                (table.c.expires_at <= now, 1),
                else_=table.c.hit_count + 1,
            ),
            "expires_at": expires_at,
        },
    )
    db.session.execute(stmt)
    count = db.session.execute(
        select(table.c.hit_count).where(
            table.c.ip_address == ip_address,
            table.c.path == path,
        )
    ).scalar_one()
    db.session.commit()
    return count


def cleanup() -> int:
    """Delete expired counters. Returns the number of rows removed."""
    deleted = db.session.query(RateLimit).filter(
        RateLimit.expires_at < utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def client_ip() -> str:
    """
    Resolve the caller's address for the current request.

    Order: first X-Forwarded-For entry, X-Real-IP, then the socket peer with
    any port removed.
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip

    return strip_port(request.remote_addr or "")


def strip_port(addr: str) -> str:
    if addr.startswith("["):
        # [::1]:8080
        end = addr.find("]")
        return addr[1:end] if end != -1 else addr
    if addr.count(":") == 1:
        return addr.split(":", 1)[0]
    return addr
