"""XDG config loading/saving."""

from __future__ import annotations

import sys
from contextlib import suppress
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/termdeck/config.toml").expanduser()
DEFAULT_STATE_DIR = "~/.termdeck"
DEFAULT_RING_BUFFER_LINES = 200
DEFAULT_FLUSH_INTERVAL = 2.0
DEFAULT_ORPHAN_GRACE = 2.0
DEFAULT_BLOCK_HISTORY = 50
DEFAULT_MIN_BLOCK_CHARS = 10
DEFAULT_LOG_MAX_LINES = 10_000
DEFAULT_LOG_KEEP_LINES = 5_000
DEFAULT_COLS = 80
DEFAULT_ROWS = 24
DEFAULT_TERM_NAME = "xterm-256color"

PIDS_FILE_NAME = "pids.json"
SESSION_LOG_NAME = "session.log"
BUFFERS_DIR_NAME = "terminal-buffers"

# name -> (type, lower bound, upper bound); bounds are inclusive.
_NUMERIC_BOUNDS: dict[str, tuple[type, float, float]] = {
    "ring_buffer_lines": (int, 10, 10_000),
    "flush_interval_seconds": (float, 0.1, 60.0),
    "orphan_grace_seconds": (float, 0.0, 30.0),
    "block_history_limit": (int, 1, 1_000),
    "min_block_chars": (int, 0, 1_000),
    "session_log_max_lines": (int, 100, 1_000_000),
    "session_log_keep_lines": (int, 50, 1_000_000),
    "default_cols": (int, 2, 1_000),
    "default_rows": (int, 2, 1_000),
}


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    state_dir: str = DEFAULT_STATE_DIR
    shell: str = ""
    term_name: str = DEFAULT_TERM_NAME
    ring_buffer_lines: int = Field(default=DEFAULT_RING_BUFFER_LINES, ge=10, le=10_000)
    flush_interval_seconds: float = Field(default=DEFAULT_FLUSH_INTERVAL, ge=0.1, le=60.0)
    orphan_grace_seconds: float = Field(default=DEFAULT_ORPHAN_GRACE, ge=0.0, le=30.0)
    block_history_limit: int = Field(default=DEFAULT_BLOCK_HISTORY, ge=1, le=1_000)
    min_block_chars: int = Field(default=DEFAULT_MIN_BLOCK_CHARS, ge=0, le=1_000)
    session_log_max_lines: int = Field(default=DEFAULT_LOG_MAX_LINES, ge=100, le=1_000_000)
    session_log_keep_lines: int = Field(default=DEFAULT_LOG_KEEP_LINES, ge=50, le=1_000_000)
    default_cols: int = Field(default=DEFAULT_COLS, ge=2, le=1_000)
    default_rows: int = Field(default=DEFAULT_ROWS, ge=2, le=1_000)

    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser()

    def pids_path(self) -> Path:
        return self.state_path() / PIDS_FILE_NAME

    def session_log_path(self) -> Path:
        return self.state_path() / SESSION_LOG_NAME

    def buffers_path(self) -> Path:
        return self.state_path() / BUFFERS_DIR_NAME


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _coerce_number(value: object, kind: type, low: float, high: float) -> int | float | None:
    if isinstance(value, bool):
        return None
    if kind is int and not isinstance(value, int):
        return None
    if kind is float and not isinstance(value, (int, float)):
        return None
    number = kind(value)
    if number < low or number > high:
        return None
    return number


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    for name in ("state_dir", "shell", "term_name"):
        value = raw.get(name)
        if isinstance(value, str) and (value.strip() or name == "shell"):
            setattr(cfg, name, value.strip())

    for name, (kind, low, high) in _NUMERIC_BOUNDS.items():
        if name not in raw:
            continue
        number = _coerce_number(raw[name], kind, low, high)
        if number is not None:
            setattr(cfg, name, number)

    if cfg.session_log_keep_lines > cfg.session_log_max_lines:
        cfg.session_log_keep_lines = min(DEFAULT_LOG_KEEP_LINES, cfg.session_log_max_lines)

    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return AppConfig()
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()
    return _sanitize(raw)


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"{name} = {_toml_scalar(value)}" for name, value in config.model_dump().items()]
    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
