"""Shared sorting utilities for repository queries."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

from creditledger.core.database import Base


def apply_order_by(
    query: Query,  # type: ignore[type-arg]
    model: type[Base],
    order_by: str | None,
    allowed_fields: Iterable[str],
    default_field: str = "created_at",
    default_direction: str = "desc",
    tie_breaker: str | None = "id",
) -> Query:  # type: ignore[type-arg]
    """Apply ordering to a SQLAlchemy query.

    Args:
        query: The SQLAlchemy query to sort.
        model: The SQLAlchemy model class.
        order_by: Sort string in "field:direction" format (e.g. "note_number:asc").
            Unknown fields fall back to the default.
        allowed_fields: Column names callers may sort on.
        default_field: Default column to sort by.
        default_direction: Default sort direction ("asc" or "desc").
        tie_breaker: Unique column appended so offset pagination is stable
            when the primary sort key has duplicates.

    Returns:
        The query with ordering applied.
    """
    field = default_field
    direction = default_direction

    if order_by:
        parts = order_by.split(":", 1)
        candidate_field = parts[0]
        candidate_direction = parts[1] if len(parts) > 1 else "asc"

        if candidate_field in set(allowed_fields):
            field = candidate_field
            if candidate_direction in ("asc", "desc"):
                direction = candidate_direction

    order_func = asc if direction == "asc" else desc
    query = query.order_by(order_func(getattr(model, field)))
    if tie_breaker and tie_breaker != field:
        query = query.order_by(order_func(getattr(model, tie_breaker)))
    return query
