"""Helpers for working with database/SQLAlchemy errors."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

_UNIQUE_VIOLATION_SQLSTATES = {"23505"}


def is_unique_violation(exc: IntegrityError, identifier: str | None = None) -> bool:
    """Return ``True`` if ``exc`` was caused by a unique constraint or index.

    Parameters
    ----------
    exc:
        The SQLAlchemy exception to inspect.
    identifier:
        Optional substring (such as ``"profile.username"`` or an index name)
        that must be present in the original database error message. When
        omitted, any unique violation will match.
    """

    orig = getattr(exc, "orig", None)
    if orig is None:
        return False

    message = str(orig).lower()
    if identifier and identifier.lower() not in message:
        return False

    sqlstate = getattr(orig, "sqlstate", None)
    if sqlstate in _UNIQUE_VIOLATION_SQLSTATES:
        return True

    return "unique constraint" in message or "duplicate key" in message
