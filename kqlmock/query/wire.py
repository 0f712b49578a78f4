"""
Cell encoding for result rows.

Converts engine values into the JSON representation the query service
uses for each wire type.
"""

import json
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, List, Sequence
from uuid import UUID

import pyarrow as pa

from kqlmock.ingest.normalizer import OpaqueDocument
from kqlmock.ingest.type_mapper import WireType

DAYS_PER_MONTH = 30


def format_timespan(value: timedelta) -> str:
    """
    Format a timedelta as a timespan literal.

    Layout is [-][d.]hh:mm:ss[.fffffff] with 100ns ticks in the fraction.
    """
    sign = "-" if value < timedelta(0) else ""
    value = abs(value)
    hours, remainder = divmod(value.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    text = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if value.days:
        text = f"{value.days}.{text}"
    if value.microseconds:
        text = f"{text}.{value.microseconds * 10:07d}"
    return sign + text


def interval_to_timedelta(value: pa.MonthDayNano) -> timedelta:
    """Calendar interval as a fixed span, counting a month as 30 days."""
    return timedelta(
        days=value.months * DAYS_PER_MONTH + value.days,
        microseconds=value.nanoseconds / 1000,
    )


def format_datetime(value: date) -> str:
    """ISO-8601 in UTC with a Z suffix. Naive values are taken as UTC."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def encode_cell(value: Any, column_type: WireType) -> Any:
    """Encode one cell value for the response payload."""
    if value is None:
        return None
    if isinstance(value, OpaqueDocument):
        return value.value
    if isinstance(value, timedelta):
        return format_timespan(value)
    if isinstance(value, pa.MonthDayNano):
        return format_timespan(interval_to_timedelta(value))
    if isinstance(value, date):
        return format_datetime(value)
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if column_type == WireType.DYNAMIC and isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def encode_row(row: Sequence[Any], column_types: List[WireType]) -> List[Any]:
    return [encode_cell(value, t) for value, t in zip(row, column_types)]
