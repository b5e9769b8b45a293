from typing import Any

from fastapi import APIRouter, Query, Request

from homeview.models.schemas import UiActionLogRequest
from homeview.services.log_service import get_log_storage_meta, list_recent_logs, log_ui_action

router = APIRouter(prefix="/v1/logs", tags=["system"])


def _normalize_sources(sources: list[str] | None) -> list[str] | None:
    """Flatten repeated and comma separated ``source`` params, first occurrence wins."""
    if not sources:
        return None
    cleaned = [x.strip() for raw in sources for x in raw.split(",") if x.strip()]
    return list(dict.fromkeys(cleaned)) or None


@router.post("/ui")
async def write_ui_log(req: UiActionLogRequest, request: Request) -> dict[str, Any]:
    item = log_ui_action(req, request.client.host if request.client else None)
    return {"success": True, "event_id": item.event_id}


@router.get("/recent")
async def get_recent_logs(
    limit: int = Query(default=200, ge=1, le=1000),
    source: list[str] | None = Query(default=None, description="ui, api or system; repeat or comma separate"),
    event_type: str | None = Query(default=None, description="e.g. ha_request, ha_history, ui_action"),
    entity_id: str | None = Query(default=None, description="Only history traffic and issues for this entity"),
) -> dict[str, Any]:
    sources = _normalize_sources(source)
    entity_id = entity_id.strip() if entity_id else None
    logs = list_recent_logs(limit=limit, sources=sources, event_type=event_type, entity_id=entity_id)
    return {
        **get_log_storage_meta(),
        "filters": {"source": sources, "event_type": event_type, "entity_id": entity_id},
        "logs": [x.model_dump(mode="json") for x in logs],
    }
