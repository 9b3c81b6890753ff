from dataclasses import dataclass
from pathlib import Path
import os
import re

DEFAULT_GAME = "space-engineers"
DEFAULT_TIMEOUT = 60
DEFAULT_HTTP_RETRIES = 3
DEFAULT_HTTP_RETRY_BACKOFF = 5.0
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_STEAMCMD_PATH = "/opt/steamcmd/steamcmd.sh"
DEFAULT_STEAM_LOGIN = "anonymous"
DEFAULT_DETAILS_CONCURRENCY = 4
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = "workshop_tool.log"


def parse_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def parse_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def parse_list(value: str | None) -> list[str]:
    if not value:
        return []
    parts = re.split(r"[,\s]+", value.strip())
    return [part for part in (p.strip() for p in parts) if part]


def default_data_root(data_dir_name: str) -> Path:
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata) / data_dir_name
    return Path.home() / ".local" / "share" / data_dir_name


@dataclass
class Config:
    game: str
    data_root: Path | None
    steamcmd_path: Path
    steam_root: Path
    steam_login: str
    web_api_key: str
    timeout: int
    http_retries: int
    http_retry_backoff: float
    poll_interval: float
    log_level: str
    log_file: str
    proxy_pool: list[str]
    details_concurrency: int


def load_config() -> Config:
    game = os.environ.get("WST_GAME", DEFAULT_GAME).strip().lower()
    data_dir = os.environ.get("WST_DATA_DIR", "").strip()
    data_root = Path(data_dir).expanduser() if data_dir else None

    steamcmd_path = Path(os.environ.get("STEAMCMD_PATH", DEFAULT_STEAMCMD_PATH))
    steam_root = Path(
        os.environ.get("STEAM_ROOT", str(Path.home() / "Steam"))
    ).expanduser()
    steam_login = os.environ.get("STEAM_LOGIN", DEFAULT_STEAM_LOGIN).strip()
    web_api_key = os.environ.get("STEAM_WEB_API_KEY", "").strip()

    timeout = parse_int(os.environ.get("WST_HTTP_TIMEOUT"), DEFAULT_TIMEOUT)
    http_retries = parse_int(os.environ.get("WST_HTTP_RETRIES"), DEFAULT_HTTP_RETRIES)
    http_retry_backoff = parse_float(
        os.environ.get("WST_HTTP_RETRY_BACKOFF"), DEFAULT_HTTP_RETRY_BACKOFF
    )
    poll_interval = parse_float(
        os.environ.get("WST_POLL_INTERVAL"), DEFAULT_POLL_INTERVAL
    )
    if poll_interval <= 0:
        poll_interval = DEFAULT_POLL_INTERVAL
    log_level = os.environ.get("WST_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_file = os.environ.get("WST_LOG_FILE", DEFAULT_LOG_FILE)
    proxy_pool = parse_list(os.environ.get("WST_PROXY_POOL"))
    details_concurrency = max(
        1,
        parse_int(
            os.environ.get("WST_DETAILS_CONCURRENCY"), DEFAULT_DETAILS_CONCURRENCY
        ),
    )

    return Config(
        game=game,
        data_root=data_root,
        steamcmd_path=steamcmd_path,
        steam_root=steam_root,
        steam_login=steam_login,
        web_api_key=web_api_key,
        timeout=timeout,
        http_retries=http_retries,
        http_retry_backoff=http_retry_backoff,
        poll_interval=poll_interval,
        log_level=log_level,
        log_file=log_file,
        proxy_pool=proxy_pool,
        details_concurrency=details_concurrency,
    )
