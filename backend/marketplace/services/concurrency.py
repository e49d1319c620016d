# Overview: Row locking helper shared by transactional services.

from __future__ import annotations


def lock_for_update(query):
    """
    Apply row-level locking (SELECT ... FOR UPDATE) and refresh any copy of
    the row already held by the session.

    NOTE: SQLite ignores FOR UPDATE; PostgreSQL honors it.
    """
    return query.with_for_update().populate_existing()
