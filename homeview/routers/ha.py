from typing import Any

from fastapi import APIRouter, Query

from homeview.models.schemas import ChartRequest, ChartResponse, HistoryRequest
from homeview.services.dashboard_service import build_chart
from homeview.services.ha_service import get_entity_history, list_entities

router = APIRouter(prefix="/v1/ha", tags=["ha"])


@router.get("/entities")
async def ha_entities(
    chartable_only: bool = Query(default=False, description="Only sensors, numbers and numeric states"),
    q: str | None = Query(default=None, description="Keyword match on entity_id/friendly_name"),
) -> list[dict[str, Any]]:
    return await list_entities(chartable_only=chartable_only, q=q)


@router.post("/history")
async def ha_history(req: HistoryRequest) -> Any:
    history = await get_entity_history(req.entity_id, req.start_date_iso, req.end_date_iso, raw=req.raw)
    if req.raw:
        return history
    return [point.model_dump(mode="json") for point in history]


@router.post("/chart", response_model=ChartResponse)
async def ha_chart(req: ChartRequest) -> ChartResponse:
    return await build_chart(req)
