import os
from pathlib import Path
from threading import RLock


APP_NAME = "homeview"
PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE_PATH = PROJECT_ROOT / ".env"


def load_local_env(env_path: Path) -> None:
    if not env_path.exists():
        return

    for raw in env_path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue

        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]

        os.environ.setdefault(key, value)


load_local_env(ENV_FILE_PATH)


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_path(name: str, default: str) -> Path:
    raw = os.getenv(name, default)
    path = Path(raw)
    if path.is_absolute():
        return path
    return (Path.cwd() / path).resolve()


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip()
    if not value:
        return default
    return value


def env_list(name: str, default: list[str] | None = None) -> list[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default or [])
    return [item.strip() for item in raw.split(",") if item.strip()]


# Connection settings are fixed at startup; the browser never sees the token.
HA_BASE_URL = os.getenv("HA_BASE_URL", "http://homeassistant.local:8123").strip().rstrip("/")
HA_TOKEN = os.getenv("HA_TOKEN", "").strip()
HA_TIMEOUT_SEC = env_float("HA_TIMEOUT_SEC", 10.0)

REFRESH_INTERVAL_SEC = max(5, env_int("HOMEVIEW_REFRESH_INTERVAL_SEC", 60))
DEFAULT_RANGE_HOURS = max(1, env_int("HOMEVIEW_DEFAULT_RANGE_HOURS", 24))
DEFAULT_ENTITY_NAMES = env_list("HOMEVIEW_DEFAULT_ENTITY_NAMES")
DISPLAY_TZ = env_str("HOMEVIEW_DISPLAY_TZ", "UTC")

APP_DIR = Path(__file__).resolve().parent.parent
HOMEVIEW_LOG_PATH = env_path("HOMEVIEW_LOG_PATH", str(APP_DIR / "logs" / "operations.jsonl"))
HOMEVIEW_LOG_MAX_BYTES = env_int("HOMEVIEW_LOG_MAX_BYTES", 5 * 1024 * 1024)
HOMEVIEW_LOG_BACKUP_COUNT = max(1, env_int("HOMEVIEW_LOG_BACKUP_COUNT", 10))
HOMEVIEW_LOG_RETENTION_DAYS = max(1, env_int("HOMEVIEW_LOG_RETENTION_DAYS", 14))
HOMEVIEW_LOG_QUEUE_MAX = max(100, env_int("HOMEVIEW_LOG_QUEUE_MAX", 5000))
UI_PAGE_PATH = APP_DIR / "web" / "ui.html"

log_lock = RLock()
