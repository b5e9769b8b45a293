from homeview.core import settings
from homeview.core.errors import missing_credentials_error
from homeview.models.schemas import DashboardConfigView, HAConfigView


def mask_token(token: str) -> str | None:
    if not token:
        return None
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"


def get_ha_config_view() -> HAConfigView:
    return HAConfigView(
        ha_base_url=settings.HA_BASE_URL,
        ha_token_set=bool(settings.HA_TOKEN),
        ha_token_preview=mask_token(settings.HA_TOKEN),
        ha_timeout_sec=settings.HA_TIMEOUT_SEC,
    )


def get_dashboard_config_view() -> DashboardConfigView:
    return DashboardConfigView(
        refresh_interval_sec=settings.REFRESH_INTERVAL_SEC,
        default_range_hours=settings.DEFAULT_RANGE_HOURS,
        default_entity_names=list(settings.DEFAULT_ENTITY_NAMES),
        display_tz=settings.DISPLAY_TZ,
    )


def ensure_ha_configured() -> None:
    if not settings.HA_BASE_URL or not settings.HA_TOKEN:
        raise missing_credentials_error()


def auth_headers() -> dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.HA_TOKEN}",
        "Content-Type": "application/json",
    }
