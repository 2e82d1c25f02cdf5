from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
import json
import os
from pathlib import Path
from typing import Any, Mapping

from .fileio import write_text_atomic

DEFAULT_DATA_DIR = Path.home() / ".selectorguard"
CONFIG_FILENAME = "config.json"
ENV_PREFIX = "SELECTORGUARD_"


@dataclass(slots=True)
class EngineSettings:
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)
    flush_interval: float = 2.0
    max_backoff: float = 60.0
    history_size: int = 5
    alternative_limit: int = 4
    persist: bool = True
    log_level: str = "INFO"

    @property
    def profiles_dir(self) -> Path:
        return self.data_dir / "profiles"

    @property
    def log_path(self) -> Path:
        return self.data_dir / "engine.log"


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    env = os.environ if environ is None else environ
    data_dir = Path(env.get(f"{ENV_PREFIX}DATA_DIR") or DEFAULT_DATA_DIR).expanduser()
    path = config_path or (data_dir / CONFIG_FILENAME)

    values: dict[str, Any] = {"data_dir": data_dir}
    values.update(_read_config_file(path))
    for item in fields(EngineSettings):
        raw = env.get(f"{ENV_PREFIX}{item.name.upper()}")
        if raw is not None and raw.strip():
            values[item.name] = raw.strip()

    return _coerce(values)


def save_settings(settings: EngineSettings, config_path: Path | None = None) -> tuple[bool, str | None]:
    path = config_path or (settings.data_dir / CONFIG_FILENAME)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return False, f"Could not create config folder: {exc}"

    payload = asdict(settings)
    payload["data_dir"] = str(settings.data_dir)
    text = json.dumps(payload, ensure_ascii=True, indent=2, sort_keys=True)
    try:
        write_text_atomic(path, text)
    except OSError as exc:
        return False, f"Could not write settings: {exc}"

    return True, None


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists() or not path.is_file():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, TypeError):
        return {}
    if not isinstance(payload, dict):
        return {}
    known = {item.name for item in fields(EngineSettings)}
    return {key: value for key, value in payload.items() if key in known}


def _coerce(values: Mapping[str, Any]) -> EngineSettings:
    defaults = EngineSettings()
    try:
        flush_interval = max(0.05, float(values.get("flush_interval", defaults.flush_interval)))
    except (TypeError, ValueError):
        flush_interval = defaults.flush_interval
    try:
        max_backoff = max(flush_interval, float(values.get("max_backoff", defaults.max_backoff)))
    except (TypeError, ValueError):
        max_backoff = max(flush_interval, defaults.max_backoff)

    return EngineSettings(
        data_dir=Path(str(values.get("data_dir", defaults.data_dir))).expanduser(),
        flush_interval=flush_interval,
        max_backoff=max_backoff,
        history_size=_positive_int(values.get("history_size"), defaults.history_size, minimum=0),
        alternative_limit=_positive_int(values.get("alternative_limit"), defaults.alternative_limit, minimum=1),
        persist=_as_bool(values.get("persist"), defaults.persist),
        log_level=str(values.get("log_level") or defaults.log_level).strip().upper(),
    )


def _positive_int(raw: Any, default: int, minimum: int) -> int:
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    return value if value >= minimum else default


def _as_bool(raw: Any, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default
