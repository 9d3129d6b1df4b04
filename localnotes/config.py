from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_STORAGE_KEY = "local-notes-app-notes"
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    db_path: Path
    host: str = "127.0.0.1"
    port: int = 8000
    storage_key: str = DEFAULT_STORAGE_KEY
    quota_bytes: int | None = DEFAULT_QUOTA_BYTES
    autosave_delay: float = 0.6
    log_level: str = "INFO"


def _parse_int(env: dict[str, str], name: str, default: str) -> int:
    raw = env.get(name, default)
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {name}: {raw}") from e


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    env = environ if environ is not None else os.environ
    db_path = Path(env.get("LOCALNOTES_DB_PATH", "./localnotes.db")).expanduser()
    host = env.get("LOCALNOTES_HOST", "127.0.0.1")
    port = _parse_int(env, "LOCALNOTES_PORT", "8000")
    storage_key = env.get("LOCALNOTES_STORAGE_KEY") or DEFAULT_STORAGE_KEY

    quota = _parse_int(env, "LOCALNOTES_QUOTA_BYTES", str(DEFAULT_QUOTA_BYTES))
    if quota < 0:
        raise ValueError(f"Invalid LOCALNOTES_QUOTA_BYTES: {quota}")

    delay_raw = env.get("LOCALNOTES_AUTOSAVE_DELAY", "0.6")
    try:
        delay = float(delay_raw)
    except ValueError as e:
        raise ValueError(f"Invalid LOCALNOTES_AUTOSAVE_DELAY: {delay_raw}") from e
    if delay < 0:
        raise ValueError(f"Invalid LOCALNOTES_AUTOSAVE_DELAY: {delay_raw}")

    log_level = env.get("LOCALNOTES_LOG_LEVEL", "INFO").upper()

    return Settings(
        db_path=db_path,
        host=host,
        port=port,
        storage_key=storage_key,
        quota_bytes=quota or None,
        autosave_delay=delay,
        log_level=log_level,
    )
