import argparse
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from homeview.core import settings
from homeview.core.errors import HAApiError
from homeview.routers import config, ha, log, ui
from homeview.services.log_service import log_http_request, log_operation, start_log_worker, stop_log_worker


@asynccontextmanager
async def lifespan(_: FastAPI):
    start_log_worker()
    try:
        yield
    finally:
        stop_log_worker()


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
app.include_router(ha.router)
app.include_router(config.router)
app.include_router(log.router)
app.include_router(ui.router)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started = perf_counter()
    response = await call_next(request)
    if request.url.path.startswith("/v1/") and request.url.path != "/v1/logs/recent":
        log_http_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((perf_counter() - started) * 1000, 2),
            client_ip=request.client.host if request.client else None,
        )
    return response


@app.exception_handler(HAApiError)
async def ha_api_error_handler(request: Request, ex: HAApiError) -> JSONResponse:
    return JSONResponse(status_code=ex.status_code, content=ex.to_error_detail())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, ex: Exception) -> JSONResponse:
    log_operation(
        event_type="server_error",
        source="api",
        action="http.unhandled",
        method=request.method,
        path=request.url.path,
        status_code=500,
        success=False,
        detail={"error_type": ex.__class__.__name__, "message": str(ex)},
    )
    return JSONResponse(status_code=500, content={"error": "Internal Server Error", "details": str(ex)})


@app.get("/health")
async def health() -> dict[str, Any]:
    return {
        "service": settings.APP_NAME,
        "status": "ok",
        "ha_base_url": settings.HA_BASE_URL,
        "ha_token_set": bool(settings.HA_TOKEN),
        "refresh_interval_sec": settings.REFRESH_INTERVAL_SEC,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="HomeView dashboard server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    args = parser.parse_args()

    import uvicorn

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
