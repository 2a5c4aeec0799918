"""Database helpers."""

from .errors import describe_db_error, is_unique_violation
from .session import AsyncSessionMaker, async_engine, get_session

__all__ = [
    "AsyncSessionMaker",
    "async_engine",
    "describe_db_error",
    "get_session",
    "is_unique_violation",
]
