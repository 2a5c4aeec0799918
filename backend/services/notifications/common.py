"""Typed SQLAlchemy expression helpers for notification queries."""

from __future__ import annotations

from typing import Any, cast

from sqlalchemy.sql import ColumnElement


def eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def gte(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column >= value)


def lte(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column <= value)


def lt(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column < value)


def is_null(column: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], cast(Any, column).is_(None))


def is_not_null(column: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], cast(Any, column).is_not(None))


def desc(column: Any) -> Any:
    return cast(Any, column).desc()


def asc(column: Any) -> Any:
    return cast(Any, column).asc()
