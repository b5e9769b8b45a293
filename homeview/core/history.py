from __future__ import annotations

import math
import re
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Sequence

from homeview.models.schemas import ChartRow, HistoryPoint


class HistoryShape(str, Enum):
    NESTED = "nested"
    FLAT = "flat"
    EMPTY = "empty"
    UNKNOWN = "unknown"


_NUMERIC_PREFIX = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

StateResolver = Callable[[Mapping[str, Any]], "str | None"]
TimestampResolver = Callable[[Mapping[str, Any]], "float | None"]


def detect_history_shape(payload: Any) -> HistoryShape:
    if payload is None:
        return HistoryShape.EMPTY
    if not isinstance(payload, list):
        return HistoryShape.UNKNOWN
    if not payload:
        return HistoryShape.EMPTY
    if isinstance(payload[0], list):
        if all(isinstance(inner, list) and not inner for inner in payload):
            return HistoryShape.EMPTY
        return HistoryShape.NESTED
    return HistoryShape.FLAT


def _inner_entity_id(inner: list[Any]) -> str | None:
    if inner and isinstance(inner[0], Mapping):
        value = inner[0].get("entity_id")
        if isinstance(value, str):
            return value
    return None


def select_raw_points(payload: Any, entity_id: str | None = None) -> list[Any]:
    """Pick the record list that belongs to ``entity_id`` out of a history payload."""
    shape = detect_history_shape(payload)
    if shape is HistoryShape.FLAT:
        return list(payload)
    if shape is HistoryShape.NESTED:
        inner_lists = [inner for inner in payload if isinstance(inner, list)]
        if entity_id:
            for inner in inner_lists:
                if _inner_entity_id(inner) == entity_id:
                    return list(inner)
        return list(inner_lists[0]) if inner_lists else []
    return []


def _state_from_compact(item: Mapping[str, Any]) -> str | None:
    value = item.get("s")
    return None if value is None else str(value)


def _state_from_verbose(item: Mapping[str, Any]) -> str | None:
    value = item.get("state")
    return None if value is None else str(value)


def parse_iso_seconds(raw: Any) -> float | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _timestamp_from_compact(item: Mapping[str, Any]) -> float | None:
    value = item.get("lu")
    # bool is an int subclass but never a timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return float(value)
    except OverflowError:
        return None


def _timestamp_from_last_updated(item: Mapping[str, Any]) -> float | None:
    return parse_iso_seconds(item.get("last_updated"))


def _timestamp_from_last_changed(item: Mapping[str, Any]) -> float | None:
    return parse_iso_seconds(item.get("last_changed"))


STATE_RESOLVERS: tuple[StateResolver, ...] = (_state_from_compact, _state_from_verbose)
TIMESTAMP_RESOLVERS: tuple[TimestampResolver, ...] = (
    _timestamp_from_compact,
    _timestamp_from_last_updated,
    _timestamp_from_last_changed,
)


def _resolve_state(item: Mapping[str, Any]) -> str | None:
    for resolver in STATE_RESOLVERS:
        value = resolver(item)
        if value is not None:
            return value
    return None


def is_representable_timestamp(seconds: float) -> bool:
    """True when ``seconds`` maps onto a calendar date datetime can hold."""
    if not math.isfinite(seconds):
        return False
    try:
        datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return False
    return True


def _resolve_timestamp(item: Mapping[str, Any]) -> float | None:
    for resolver in TIMESTAMP_RESOLVERS:
        value = resolver(item)
        if value is not None and is_representable_timestamp(value):
            return value
    return None


def normalize_points(raw_points: Iterable[Any]) -> list[HistoryPoint]:
    points: list[HistoryPoint] = []
    for item in raw_points:
        if not isinstance(item, Mapping):
            continue
        state = _resolve_state(item)
        if state is None:
            continue
        timestamp = _resolve_timestamp(item)
        if timestamp is None:
            continue
        points.append(HistoryPoint(s=state, lu=timestamp))

    points.sort(key=lambda p: p.lu)
    return points


def normalize_history(payload: Any, entity_id: str | None = None) -> list[HistoryPoint]:
    """Reduce one entity's raw history payload to an ascending point list.

    Accepts the nested (one list per entity), flat and empty response
    variants. Unknown shapes yield an empty list; callers that care can
    check ``detect_history_shape`` first.
    """
    return normalize_points(select_raw_points(payload, entity_id))


def coerce_state_number(raw: Any) -> float | None:
    """Read the leading number of a state string, e.g. ``"22,5 °C"`` -> ``22.5``."""
    if raw is None:
        return None
    text = str(raw).replace(",", ".", 1)
    match = _NUMERIC_PREFIX.match(text)
    if not match:
        return None
    try:
        value = float(match.group(0))
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def format_row_labels(timestamp_millis: float, tz: tzinfo) -> tuple[str, str] | None:
    try:
        moment = datetime.fromtimestamp(timestamp_millis / 1000, tz=tz)
    except (OverflowError, ValueError, OSError):
        return None
    return moment.strftime("%H:%M:%S"), moment.strftime("%Y-%m-%d %H:%M:%S")


def merge_histories(
    histories: Mapping[str, Sequence[HistoryPoint]],
    selected_ids: Sequence[str],
    tz: tzinfo = timezone.utc,
) -> list[ChartRow]:
    """Align several entities' histories onto one shared timestamp axis.

    Every distinct timestamp of the selected entities becomes a row. Entities
    without a point at that exact instant (or with a non-numeric state) get
    ``None``. Rows with no numeric value at all are dropped.
    """
    by_entity: dict[str, dict[float, str]] = {}
    for entity_id in selected_ids:
        lookup: dict[float, str] = {}
        for point in histories.get(entity_id) or []:
            lookup.setdefault(point.lu * 1000, point.s)
        by_entity[entity_id] = lookup

    timestamps = sorted({ts for lookup in by_entity.values() for ts in lookup})

    rows: list[ChartRow] = []
    for timestamp in timestamps:
        values: dict[str, float | None] = {}
        for entity_id in selected_ids:
            state = by_entity[entity_id].get(timestamp)
            values[entity_id] = coerce_state_number(state) if state is not None else None

        if all(value is None for value in values.values()):
            continue

        labels = format_row_labels(timestamp, tz)
        if labels is None:
            # out of range for the display timezone
            continue
        short_label, full_label = labels
        rows.append(
            ChartRow(
                timestamp_millis=timestamp,
                time=short_label,
                full_time=full_label,
                values=values,
            )
        )
    return rows
