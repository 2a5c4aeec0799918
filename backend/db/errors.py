"""Database error helpers."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError


def is_unique_violation(error: IntegrityError) -> bool:
    """Return True when the IntegrityError indicates a unique-constraint conflict."""
    original = getattr(error, "orig", None)
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate == "23505":
        return True
    message = str(original or error).lower()
    return "duplicate key" in message or "unique constraint" in message


def describe_db_error(error: SQLAlchemyError) -> str:
    """Short driver message suitable for structured log fields."""
    original = getattr(error, "orig", None)
    message = str(original or error).strip()
    first_line, _, _ = message.partition("\n")
    return first_line[:300]


__all__ = ["describe_db_error", "is_unique_violation"]
