import json
import queue
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from homeview.core import settings
from homeview.models.schemas import OperationLogItem, UiActionLogRequest


_DETAIL_MAX_CHARS = 4000
_CLEANUP_INTERVAL_SEC = 60.0
_WRITE_IDLE_TIMEOUT_SEC = 0.25
_WRITE_BATCH_MAX = 200

_last_cleanup_at = 0.0
_queue: queue.Queue[OperationLogItem] = queue.Queue(maxsize=settings.HOMEVIEW_LOG_QUEUE_MAX)
_worker_thread: threading.Thread | None = None
_stop_event = threading.Event()
_worker_state_lock = threading.Lock()
_dropped_count = 0


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _log_path() -> Path:
    return settings.HOMEVIEW_LOG_PATH


def _backup_path(index: int) -> Path:
    path = _log_path()
    return path.with_name(f"{path.name}.{index}")


def _backup_index(candidate: Path) -> int | None:
    prefix = f"{_log_path().name}."
    if not candidate.name.startswith(prefix):
        return None
    suffix = candidate.name[len(prefix):]
    return int(suffix) if suffix.isdigit() else None


def _compress_detail(detail: Any) -> dict[str, Any]:
    data = detail if isinstance(detail, dict) else {"value": detail}
    try:
        raw = json.dumps(data, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        raw = json.dumps({"value": str(data)}, ensure_ascii=False)

    if len(raw) > _DETAIL_MAX_CHARS:
        return {"_truncated": True, "_size": len(raw), "preview": raw[:_DETAIL_MAX_CHARS]}

    parsed = json.loads(raw)
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def _rotate_if_needed() -> None:
    path = _log_path()
    if not path.exists() or path.stat().st_size < settings.HOMEVIEW_LOG_MAX_BYTES:
        return

    _backup_path(settings.HOMEVIEW_LOG_BACKUP_COUNT).unlink(missing_ok=True)
    for idx in range(settings.HOMEVIEW_LOG_BACKUP_COUNT - 1, 0, -1):
        src = _backup_path(idx)
        if src.exists():
            src.replace(_backup_path(idx + 1))
    path.replace(_backup_path(1))


def _cleanup_backups(force: bool = False) -> None:
    global _last_cleanup_at
    now = time.time()
    if not force and now - _last_cleanup_at < _CLEANUP_INTERVAL_SEC:
        return
    _last_cleanup_at = now

    expire_before = now - settings.HOMEVIEW_LOG_RETENTION_DAYS * 86400
    for candidate in _log_path().parent.glob(f"{_log_path().name}.*"):
        idx = _backup_index(candidate)
        if idx is None:
            continue
        if idx > settings.HOMEVIEW_LOG_BACKUP_COUNT or candidate.stat().st_mtime < expire_before:
            candidate.unlink(missing_ok=True)


def _write_batch(entries: list[OperationLogItem]) -> None:
    if not entries:
        return

    payload = "".join(json.dumps(e.model_dump(mode="json"), ensure_ascii=False) + "\n" for e in entries)
    with settings.log_lock:
        _log_path().parent.mkdir(parents=True, exist_ok=True)
        _rotate_if_needed()
        _cleanup_backups()
        with _log_path().open("a", encoding="utf-8") as f:
            f.write(payload)


def _drain_once() -> int:
    try:
        batch = [_queue.get(timeout=_WRITE_IDLE_TIMEOUT_SEC)]
    except queue.Empty:
        return 0

    while len(batch) < _WRITE_BATCH_MAX:
        try:
            batch.append(_queue.get_nowait())
        except queue.Empty:
            break

    try:
        _write_batch(batch)
    finally:
        for _ in batch:
            _queue.task_done()
    return len(batch)


def _worker_loop() -> None:
    while not _stop_event.is_set() or not _queue.empty():
        try:
            _drain_once()
        except OSError:
            # Disk trouble must not kill the writer; the batch is lost.
            time.sleep(0.05)


def start_log_worker() -> None:
    global _worker_thread
    with _worker_state_lock:
        if _worker_thread and _worker_thread.is_alive():
            return
        _stop_event.clear()
        _worker_thread = threading.Thread(target=_worker_loop, name="homeview-log-writer", daemon=True)
        _worker_thread.start()


def stop_log_worker(timeout_sec: float = 2.0) -> None:
    global _worker_thread
    with _worker_state_lock:
        worker = _worker_thread
        if worker is None:
            return
        _stop_event.set()

    worker.join(timeout=timeout_sec)
    with _worker_state_lock:
        if _worker_thread is worker:
            _worker_thread = None


def flush_logs(timeout_sec: float = 0.3) -> None:
    deadline = time.perf_counter() + timeout_sec
    while _queue.unfinished_tasks > 0 and time.perf_counter() < deadline:
        time.sleep(0.01)


def _enqueue(entry: OperationLogItem) -> bool:
    global _dropped_count
    start_log_worker()
    try:
        _queue.put_nowait(entry)
    except queue.Full:
        with _worker_state_lock:
            _dropped_count += 1
        return False
    return True


def log_operation(
    *,
    event_type: str,
    source: str,
    action: str,
    method: str | None = None,
    path: str | None = None,
    status_code: int | None = None,
    duration_ms: float | None = None,
    client_ip: str | None = None,
    trace_id: str | None = None,
    success: bool | None = None,
    detail: Any = None,
) -> OperationLogItem:
    item = OperationLogItem(
        event_id=uuid4().hex,
        created_at=_now_iso(),
        event_type=event_type,
        source=source,
        action=action,
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        client_ip=client_ip,
        trace_id=trace_id,
        success=success,
        detail=_compress_detail(detail or {}),
    )
    _enqueue(item)
    return item


def log_http_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: str | None,
    detail: dict[str, Any] | None = None,
) -> OperationLogItem:
    return log_operation(
        event_type="http_request",
        source="api",
        action="http.request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        client_ip=client_ip,
        success=status_code < 400,
        detail=detail or {},
    )


def log_ha_request(
    *,
    context: str,
    path: str,
    status_code: int,
    duration_ms: float,
    message: str | None = None,
    **extra: Any,
) -> OperationLogItem:
    """Record one upstream Home Assistant call; ``status_code`` 0 means no response."""
    detail: dict[str, Any] = {
        "context": context,
        "request": {"base_url": settings.HA_BASE_URL, "path": path},
        **extra,
    }
    if message:
        detail["message"] = message
    return log_operation(
        event_type="ha_request",
        source="system",
        action="ha.request",
        method="GET",
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        success=0 < status_code < 400,
        detail=detail,
    )


def log_history_issue(*, action: str, entity_id: str | None, message: str, **extra: Any) -> OperationLogItem:
    return log_operation(
        event_type="ha_history",
        source="system",
        action=action,
        success=False,
        detail={"entity_id": entity_id, "message": message, **extra},
    )


def log_ui_action(req: UiActionLogRequest, client_ip: str | None) -> OperationLogItem:
    detail = dict(req.detail)
    if req.view:
        detail["view"] = req.view
    return log_operation(
        event_type="ui_action",
        source="ui",
        action=req.action,
        client_ip=client_ip,
        trace_id=req.trace_id,
        success=req.success,
        detail=detail,
    )


def _iter_log_files() -> list[Path]:
    files = [_log_path()] + [_backup_path(idx) for idx in range(1, settings.HOMEVIEW_LOG_BACKUP_COUNT + 1)]
    return [p for p in files if p.exists()]


def list_recent_logs(
    *,
    limit: int = 200,
    sources: list[str] | None = None,
    event_type: str | None = None,
    entity_id: str | None = None,
) -> list[OperationLogItem]:
    """Newest-first log entries, optionally narrowed to one entity's history traffic."""
    safe_limit = max(1, min(limit, 1000))
    flush_logs(timeout_sec=0.35)
    source_filters = set(sources or [])

    result: list[OperationLogItem] = []
    with settings.log_lock:
        _cleanup_backups(force=True)
        for file_path in _iter_log_files():
            try:
                lines = file_path.read_text(encoding="utf-8").splitlines()
            except OSError:
                continue

            for line in reversed(lines):
                if not line.strip():
                    continue
                try:
                    item = OperationLogItem.model_validate_json(line)
                except ValueError:
                    continue
                if source_filters and item.source not in source_filters:
                    continue
                if event_type and item.event_type != event_type:
                    continue
                if entity_id and item.detail.get("entity_id") != entity_id:
                    continue
                result.append(item)
                if len(result) >= safe_limit:
                    return result
    return result


def get_log_storage_meta() -> dict[str, Any]:
    with settings.log_lock:
        path = _log_path()
        size = path.stat().st_size if path.exists() else 0
    with _worker_state_lock:
        dropped = _dropped_count
        worker_alive = bool(_worker_thread and _worker_thread.is_alive())
    return {
        "storage": "file",
        "log_path": str(settings.HOMEVIEW_LOG_PATH),
        "current_size_bytes": size,
        "max_bytes": settings.HOMEVIEW_LOG_MAX_BYTES,
        "backup_count": settings.HOMEVIEW_LOG_BACKUP_COUNT,
        "retention_days": settings.HOMEVIEW_LOG_RETENTION_DAYS,
        "queue_max": settings.HOMEVIEW_LOG_QUEUE_MAX,
        "queue_size": _queue.qsize(),
        "dropped_count": dropped,
        "worker_alive": worker_alive,
    }
