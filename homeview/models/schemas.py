from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HistoryPoint(BaseModel):
    s: str = Field(description="Entity state as reported by Home Assistant")
    lu: float = Field(description="Last updated, unix seconds")


class HistoryRequest(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "entityId": "sensor.living_room_temperature",
                "startDateISO": "2024-05-01T00:00:00Z",
                "endDateISO": "2024-05-02T00:00:00Z",
            }
        },
    )

    # Optional on purpose: missing values must become a 400, not a 422.
    entity_id: str | None = Field(default=None, alias="entityId")
    start_date_iso: str | None = Field(default=None, alias="startDateISO")
    end_date_iso: str | None = Field(default=None, alias="endDateISO")
    raw: bool = Field(default=False, description="Return the upstream body without normalization")


class ChartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_ids: list[str] = Field(default_factory=list, alias="entityIds")
    start_date_iso: str | None = Field(default=None, alias="startDateISO")
    end_date_iso: str | None = Field(default=None, alias="endDateISO")


class ChartRow(BaseModel):
    timestamp_millis: float
    time: str = Field(description="Short axis label, HH:MM:SS")
    full_time: str = Field(description="Table label, YYYY-MM-DD HH:MM:SS")
    values: dict[str, float | None] = Field(default_factory=dict)


class ChartSeries(BaseModel):
    entity_id: str
    color: str


class ChartResponse(BaseModel):
    start_date_iso: str | None = None
    end_date_iso: str | None = None
    entity_count: int = 0
    row_count: int = 0
    series: list[ChartSeries] = Field(default_factory=list)
    rows: list[ChartRow] = Field(default_factory=list)


class HAConfigView(BaseModel):
    ha_base_url: str
    ha_token_set: bool
    ha_token_preview: str | None = None
    ha_timeout_sec: float


class DashboardConfigView(BaseModel):
    refresh_interval_sec: int
    default_range_hours: int
    default_entity_names: list[str] = Field(default_factory=list)
    display_tz: str


class UiActionLogRequest(BaseModel):
    action: str = Field(min_length=1, max_length=128)
    view: str | None = Field(default=None, max_length=64)
    detail: dict[str, Any] = Field(default_factory=dict)
    trace_id: str | None = Field(default=None, max_length=128)
    success: bool | None = None


class OperationLogItem(BaseModel):
    event_id: str
    created_at: str
    event_type: str
    source: str
    action: str
    method: str | None = None
    path: str | None = None
    status_code: int | None = None
    duration_ms: float | None = None
    client_ip: str | None = None
    trace_id: str | None = None
    success: bool | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
