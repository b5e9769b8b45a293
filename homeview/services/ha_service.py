from datetime import datetime, timezone
from time import perf_counter
from typing import Any
from urllib.parse import quote

import httpx

from homeview.core import settings
from homeview.core.errors import HAApiError, extract_upstream_message
from homeview.core.history import (
    HistoryShape,
    coerce_state_number,
    detect_history_shape,
    normalize_history,
)
from homeview.models.schemas import HistoryPoint
from homeview.services.config_service import auth_headers, ensure_ha_configured
from homeview.services.log_service import log_ha_request, log_history_issue


CHARTABLE_DOMAINS = ("sensor", "number")
_BODY_SNIPPET_CHARS = 200


def build_client(timeout: float | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout if timeout is not None else settings.HA_TIMEOUT_SEC)


def _elapsed_ms(started: float) -> float:
    return round((perf_counter() - started) * 1000, 2)


def parse_iso_bound(raw: str, *, field: str) -> datetime:
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise HAApiError(status_code=400, error=f"Invalid {field}: expected an ISO-8601 timestamp", details=raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_history_window(start_iso: str | None, end_iso: str | None) -> tuple[datetime, datetime]:
    if not start_iso or not end_iso:
        raise HAApiError(status_code=400, error="Missing Start Date or End Date from request")
    start = parse_iso_bound(start_iso, field="startDateISO")
    end = parse_iso_bound(end_iso, field="endDateISO")
    if start > end:
        raise HAApiError(status_code=400, error="Start date cannot be after end date.")
    return start, end


def history_path(start: datetime) -> str:
    return f"/api/history/period/{quote(start.isoformat(), safe=':')}"


async def fetch_history_raw(
    client: httpx.AsyncClient,
    entity_id: str,
    start: datetime,
    end: datetime,
) -> Any:
    """Fetch one entity's history window and return the upstream JSON untouched."""
    ha_path = history_path(start)
    params = {
        "filter_entity_id": entity_id,
        "end_time": end.isoformat(),
        "minimal_response": "",
    }
    started = perf_counter()
    try:
        resp = await client.get(f"{settings.HA_BASE_URL}{ha_path}", headers=auth_headers(), params=params)
    except Exception as ex:
        log_ha_request(
            context="ha.history",
            path=ha_path,
            status_code=0,
            duration_ms=_elapsed_ms(started),
            message=str(ex),
            entity_id=entity_id,
        )
        raise HAApiError(
            status_code=500,
            error="Server error while fetching entity history.",
            details=str(ex) or ex.__class__.__name__,
        ) from ex

    log_ha_request(
        context="ha.history",
        path=ha_path,
        status_code=resp.status_code,
        duration_ms=_elapsed_ms(started),
        entity_id=entity_id,
    )

    if resp.status_code >= 400:
        message = extract_upstream_message(resp.text, resp.status_code)
        raise HAApiError(
            status_code=resp.status_code,
            error=f"Home Assistant API Error fetching history for {entity_id} ({resp.status_code}): {message}",
            details=f"({resp.status_code}) {message}",
        )

    if not resp.content:
        return []
    try:
        return resp.json()
    except ValueError as ex:
        snippet = resp.text[:_BODY_SNIPPET_CHARS]
        log_history_issue(
            action="ha.history.invalid_json",
            entity_id=entity_id,
            message=str(ex),
            body=resp.text[:500],
        )
        raise HAApiError(
            status_code=500,
            error=f"Failed to parse JSON response from Home Assistant for {entity_id}.",
            details=f"Response text: {snippet}",
        ) from ex


def normalize_entity_history(payload: Any, entity_id: str) -> list[HistoryPoint]:
    shape = detect_history_shape(payload)
    if shape is HistoryShape.UNKNOWN:
        log_history_issue(
            action="ha.history.unexpected_shape",
            entity_id=entity_id,
            message="unexpected history format, treating as empty",
            payload_type=type(payload).__name__,
        )
        return []
    return normalize_history(payload, entity_id)


async def load_entity_history(client: httpx.AsyncClient, entity_id: str, start: datetime, end: datetime) -> list[HistoryPoint]:
    payload = await fetch_history_raw(client, entity_id, start, end)
    return normalize_entity_history(payload, entity_id)


async def get_entity_history(
    entity_id: str | None,
    start_iso: str | None,
    end_iso: str | None,
    *,
    raw: bool = False,
) -> Any:
    if not entity_id or not entity_id.strip() or not start_iso or not end_iso:
        raise HAApiError(status_code=400, error="Missing entityId, Start Date, or End Date from request")
    ensure_ha_configured()
    start, end = validate_history_window(start_iso, end_iso)

    normalized_id = entity_id.strip()
    async with build_client() as client:
        if raw:
            return await fetch_history_raw(client, normalized_id, start, end)
        return await load_entity_history(client, normalized_id, start, end)


async def fetch_states_raw() -> list[dict[str, Any]]:
    ensure_ha_configured()
    ha_path = "/api/states"
    started = perf_counter()
    try:
        async with build_client() as client:
            resp = await client.get(f"{settings.HA_BASE_URL}{ha_path}", headers=auth_headers())
    except Exception as ex:
        log_ha_request(context="ha.states", path=ha_path, status_code=0, duration_ms=_elapsed_ms(started), message=str(ex))
        raise HAApiError(
            status_code=500,
            error="Internal Server Error fetching entities",
            details=str(ex) or ex.__class__.__name__,
        ) from ex

    log_ha_request(context="ha.states", path=ha_path, status_code=resp.status_code, duration_ms=_elapsed_ms(started))

    if resp.status_code >= 400:
        message = extract_upstream_message(resp.text, resp.status_code)
        raise HAApiError(status_code=resp.status_code, error=f"Home Assistant API Error ({resp.status_code}): {message}")

    try:
        payload = resp.json() if resp.content else []
    except ValueError as ex:
        raise HAApiError(
            status_code=500,
            error="Internal Server Error fetching entities",
            details=f"invalid JSON from Home Assistant: {ex}",
        ) from ex
    if not isinstance(payload, list):
        raise HAApiError(status_code=500, error="Internal Server Error fetching entities", details="unexpected states payload")
    return [row for row in payload if isinstance(row, dict)]


def _entity_domain(entity_id: str) -> str:
    return entity_id.split(".", 1)[0].lower() if "." in entity_id else ""


def _friendly_name(row: dict[str, Any]) -> str:
    attrs = row.get("attributes") if isinstance(row.get("attributes"), dict) else {}
    return str(attrs.get("friendly_name") or "")


def is_chartable_entity(row: dict[str, Any]) -> bool:
    """Sensors and number helpers, plus anything whose current state reads as a number."""
    entity_id = str(row.get("entity_id", "")).strip()
    if not entity_id:
        return False
    if _entity_domain(entity_id) in CHARTABLE_DOMAINS:
        return True
    return coerce_state_number(row.get("state")) is not None


def filter_entities(
    rows: list[dict[str, Any]],
    *,
    chartable_only: bool = False,
    q: str | None = None,
) -> list[dict[str, Any]]:
    query = (q or "").strip().lower()
    filtered: list[dict[str, Any]] = []
    for row in rows:
        entity_id = str(row.get("entity_id", "")).strip()
        if not entity_id:
            continue
        if chartable_only and not is_chartable_entity(row):
            continue
        if query and query not in entity_id.lower() and query not in _friendly_name(row).lower():
            continue
        filtered.append(row)

    filtered.sort(key=lambda x: str(x.get("entity_id", "")))
    return filtered


async def list_entities(*, chartable_only: bool = False, q: str | None = None) -> list[dict[str, Any]]:
    rows = await fetch_states_raw()
    return filter_entities(rows, chartable_only=chartable_only, q=q)
