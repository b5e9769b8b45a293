import asyncio
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from homeview.core import settings
from homeview.core.errors import HAApiError
from homeview.core.history import merge_histories
from homeview.models.schemas import ChartRequest, ChartResponse, ChartSeries, HistoryPoint
from homeview.services.config_service import ensure_ha_configured
from homeview.services.ha_service import build_client, load_entity_history, validate_history_window
from homeview.services.log_service import log_history_issue


SERIES_COLORS = (
    "red",
    "green",
    "blue",
    "purple",
    "orange",
    "teal",
    "magenta",
    "brown",
    "lime",
    "cyan",
    "navy",
    "olive",
    "maroon",
    "indigo",
    "gold",
)


def display_timezone() -> tzinfo:
    try:
        return ZoneInfo(settings.DISPLAY_TZ)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def build_series(entity_ids: list[str]) -> list[ChartSeries]:
    return [
        ChartSeries(entity_id=entity_id, color=SERIES_COLORS[idx % len(SERIES_COLORS)])
        for idx, entity_id in enumerate(entity_ids)
    ]


def _selected_ids(raw: list[str]) -> list[str]:
    cleaned = [x.strip() for x in raw if x and x.strip()]
    return list(dict.fromkeys(cleaned))


async def fetch_histories(entity_ids: list[str], start: datetime, end: datetime) -> dict[str, list[HistoryPoint]]:
    """Fetch every entity concurrently; any single failure fails the whole batch."""
    async with build_client() as client:
        tasks = [load_entity_history(client, entity_id, start, end) for entity_id in entity_ids]
        results = await asyncio.gather(*tasks, return_exceptions=True)

    failures = [(entity_id, r) for entity_id, r in zip(entity_ids, results) if isinstance(r, BaseException)]
    if failures:
        entity_id, first = failures[0]
        log_history_issue(
            action="ha.chart.fetch_failed",
            entity_id=entity_id,
            message=str(first),
            failed_entities=[x for x, _ in failures],
        )
        if isinstance(first, HAApiError):
            raise first
        raise HAApiError(
            status_code=500,
            error=f"Failed to fetch history for {entity_id}",
            details=str(first) or first.__class__.__name__,
        ) from first
    return dict(zip(entity_ids, results))


async def build_chart(req: ChartRequest) -> ChartResponse:
    entity_ids = _selected_ids(req.entity_ids)
    if not entity_ids:
        return ChartResponse(start_date_iso=req.start_date_iso, end_date_iso=req.end_date_iso)

    start, end = validate_history_window(req.start_date_iso, req.end_date_iso)
    ensure_ha_configured()

    histories = await fetch_histories(entity_ids, start, end)
    rows = merge_histories(histories, entity_ids, display_timezone())
    return ChartResponse(
        start_date_iso=start.isoformat(),
        end_date_iso=end.isoformat(),
        entity_count=len(entity_ids),
        row_count=len(rows),
        series=build_series(entity_ids),
        rows=rows,
    )
