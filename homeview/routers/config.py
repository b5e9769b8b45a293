from fastapi import APIRouter

from homeview.models.schemas import DashboardConfigView, HAConfigView
from homeview.services.config_service import get_dashboard_config_view, get_ha_config_view

router = APIRouter(prefix="/v1/config", tags=["system"])


@router.get("/ha", response_model=HAConfigView)
async def get_ha_config() -> HAConfigView:
    return get_ha_config_view()


@router.get("/dashboard", response_model=DashboardConfigView)
async def get_dashboard_config() -> DashboardConfigView:
    return get_dashboard_config_view()
