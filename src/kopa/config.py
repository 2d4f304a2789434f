import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DATA_DIR = Path(os.environ.get("KOPA_DATA_DIR", Path.home() / ".local" / "share" / "kopa"))
HISTORY_PATH = DATA_DIR / "history.json"
LOCK_PATH = DATA_DIR / "history.lock"
IMAGE_DIR = DATA_DIR / "images"
LOG_PATH = DATA_DIR / "kopa.log"
SOCKET_PATH = Path(os.environ.get("KOPA_SOCKET_PATH", DATA_DIR / "kopa.sock"))

CONFIG_DIR = Path(os.environ.get("KOPA_CONFIG_DIR", Path.home() / ".config" / "kopa"))
CONFIG_PATH = CONFIG_DIR / "config.json"

WL_COPY_PATH = os.environ.get("WL_COPY_PATH", "wl-copy")
WL_PASTE_PATH = os.environ.get("WL_PASTE_PATH", "wl-paste")
FZF_PATH = os.environ.get("FZF_PATH", "fzf")

DEFAULT_HISTORY_LIMIT = 1000
DEFAULT_MAX_FILE_SIZE_MB = 10

LOCK_TIMEOUT = 5.0  # seconds before a writer gives up on the lock
LOCK_POLL_INTERVAL = 0.05  # seconds between lock attempts
HEARTBEAT_INTERVAL = 60  # seconds between daemon liveness logs
SHUTDOWN_TIMEOUT = 5.0  # seconds to wait for watchers after terminate
FILTER_TIMEOUT = 10.0  # seconds before fzf is abandoned
DEFAULT_PAGE_SIZE = 50
PREVIEW_LENGTH = 80  # characters shown per entry in CLI listings


@dataclass(frozen=True)
class Settings:
    history_limit: int = DEFAULT_HISTORY_LIMIT
    max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


def _positive_int(value) -> int | None:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value > 0 else None


def _parse_env_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return None
    if value <= 0:
        logger.warning("Ignoring %s=%r: must be positive", name, raw)
        return None
    return value


def _load_config_file(path: Path) -> Settings:
    """Read settings from the JSON config file, falling back to defaults."""
    defaults = Settings()
    if not path.exists():
        return defaults

    try:
        content = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Config parse error in %s, using defaults: %s", path, e)
        return defaults

    if not isinstance(content, dict):
        logger.warning("Config file %s is not a JSON object, using defaults", path)
        return defaults

    history_limit = _positive_int(content.get("historyLimit", DEFAULT_HISTORY_LIMIT))
    max_file_size_mb = _positive_int(content.get("maxFileSizeMb", DEFAULT_MAX_FILE_SIZE_MB))
    if history_limit is None or max_file_size_mb is None:
        logger.warning("Invalid config values in %s, using defaults", path)
        return defaults

    return Settings(history_limit=history_limit, max_file_size_mb=max_file_size_mb)


def load_settings(path: Path | None = None) -> Settings:
    """Resolve settings: defaults, then the config file, then environment overrides."""
    file_settings = _load_config_file(path if path is not None else CONFIG_PATH)

    history_limit = _parse_env_int("KOPA_HISTORY_LIMIT")
    max_file_size_mb = _parse_env_int("KOPA_MAX_FILE_SIZE_MB")

    return Settings(
        history_limit=history_limit if history_limit is not None else file_settings.history_limit,
        max_file_size_mb=max_file_size_mb if max_file_size_mb is not None else file_settings.max_file_size_mb,
    )
