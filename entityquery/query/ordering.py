"""
Client-side ordering and pagination of raw records.

Used by stores that evaluate in process and by the executor when a store
cannot sort or paginate itself. Sorting is stable, so records with equal
sort keys keep the order the store returned them in.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from ..core.types import SortOrder
from .conditions import MISSING, get_field_value


def _sort_key(value: Any) -> Tuple[int, Any]:
    """Rank values by type so mixed-type columns still sort."""
    if value is MISSING or value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float, Decimal)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, bytes):
        return (4, value)
    if isinstance(value, datetime):
        # naive and aware datetimes do not compare, so they rank apart
        if value.tzinfo is None or value.utcoffset() is None:
            return (5, value)
        return (6, value.astimezone(timezone.utc))
    if isinstance(value, date):
        return (7, value)
    if isinstance(value, time):
        return (8, value.isoformat())
    return (9, repr(value))


def sort_records(
    records: List[Dict[str, Any]],
    order: Optional[SortOrder],
) -> List[Dict[str, Any]]:
    """
    Sort records by a single key.

    Missing and null values sort first when ascending and last when
    descending.
    """
    if order is None:
        return list(records)
    return sorted(
        records,
        key=lambda record: _sort_key(get_field_value(record, order.key)),
        reverse=order.descending,
    )


def paginate(
    records: List[Dict[str, Any]],
    skip: int = 0,
    limit: int = 0,
) -> List[Dict[str, Any]]:
    """Apply skip and limit (0 = unbounded)."""
    if skip:
        records = records[skip:]
    if limit:
        records = records[:limit]
    return list(records)
