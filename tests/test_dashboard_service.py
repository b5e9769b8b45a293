from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import httpx

from homeview.core import settings
from homeview.core.errors import HAApiError
from homeview.models.schemas import ChartRequest
from homeview.services.dashboard_service import SERIES_COLORS, build_chart, build_series
from homeview.services import log_service

HISTORY = {
    "sensor.a": [[{"entity_id": "sensor.a", "s": "20,5 °C", "lu": 20}, {"s": "19", "lu": 10}]],
    "sensor.b": [[{"entity_id": "sensor.b", "s": "55", "lu": 10}]],
    "sensor.c": [[]],
}


def _history_handler(request: httpx.Request) -> httpx.Response:
    entity_id = request.url.params["filter_entity_id"]
    if entity_id == "sensor.broken":
        return httpx.Response(401, text="401: Unauthorized")
    return httpx.Response(200, json=HISTORY.get(entity_id, []))


class TestBuildChart(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return _history_handler(request)

        def factory(timeout: float | None = None) -> httpx.AsyncClient:
            return httpx.AsyncClient(transport=httpx.MockTransport(handler))

        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        patchers = [
            patch.object(settings, "HOMEVIEW_LOG_PATH", Path(tmp.name) / "operations.jsonl"),
            patch.object(settings, "HA_BASE_URL", "http://ha.test:8123"),
            patch.object(settings, "HA_TOKEN", "secret-token"),
            patch.object(settings, "DISPLAY_TZ", "UTC"),
            patch("homeview.services.dashboard_service.build_client", new=factory),
        ]
        for p in patchers:
            p.start()
            self.addCleanup(p.stop)
        self.addCleanup(log_service.flush_logs, 2.0)

    def _request(self, *entity_ids: str) -> ChartRequest:
        return ChartRequest(
            entityIds=list(entity_ids),
            startDateISO="2024-01-01T00:00:00Z",
            endDateISO="2024-01-02T00:00:00Z",
        )

    async def test_merges_selected_entities(self) -> None:
        chart = await build_chart(self._request("sensor.a", "sensor.b"))

        self.assertEqual(2, chart.entity_count)
        self.assertEqual(2, chart.row_count)
        self.assertEqual([10000.0, 20000.0], [r.timestamp_millis for r in chart.rows])
        self.assertEqual({"sensor.a": 19.0, "sensor.b": 55.0}, chart.rows[0].values)
        self.assertEqual({"sensor.a": 20.5, "sensor.b": None}, chart.rows[1].values)
        self.assertEqual(["red", "green"], [s.color for s in chart.series])
        self.assertEqual(2, len(self.requests))

    async def test_entity_without_history_is_not_an_error(self) -> None:
        chart = await build_chart(self._request("sensor.c"))
        self.assertEqual([], chart.rows)
        self.assertEqual(1, chart.entity_count)

    async def test_one_failure_fails_the_batch(self) -> None:
        with self.assertRaises(HAApiError) as ex:
            await build_chart(self._request("sensor.a", "sensor.broken", "sensor.b"))
        self.assertEqual(401, ex.exception.status_code)
        self.assertIn("sensor.broken", ex.exception.error)
        self.assertEqual(3, len(self.requests))

    async def test_empty_selection_skips_upstream(self) -> None:
        chart = await build_chart(self._request())
        self.assertEqual([], chart.rows)
        self.assertEqual([], self.requests)

    async def test_duplicate_selection_is_fetched_once(self) -> None:
        chart = await build_chart(self._request("sensor.a", "sensor.a", " "))
        self.assertEqual(1, chart.entity_count)
        self.assertEqual(1, len(self.requests))

    async def test_invalid_window_fails_before_fan_out(self) -> None:
        req = ChartRequest(entityIds=["sensor.a"], startDateISO="2024-01-02T00:00:00Z", endDateISO="2024-01-01T00:00:00Z")
        with self.assertRaises(HAApiError) as ex:
            await build_chart(req)
        self.assertEqual(400, ex.exception.status_code)
        self.assertEqual([], self.requests)


class TestBuildSeries(unittest.TestCase):
    def test_colors_wrap_around_palette(self) -> None:
        ids = [f"sensor.s{i}" for i in range(len(SERIES_COLORS) + 1)]
        series = build_series(ids)
        self.assertEqual(SERIES_COLORS[0], series[-1].color)
        self.assertEqual(ids, [s.entity_id for s in series])


if __name__ == "__main__":
    unittest.main()
