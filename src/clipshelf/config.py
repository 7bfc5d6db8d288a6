from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

ENV_PREFIX = "CLIPSHELF_"

DEFAULT_HOTKEY = "CommandOrControl+Shift+S"

# Written to the settings table on first start when missing.
DEFAULT_SETTINGS = {
    "global_hotkey": DEFAULT_HOTKEY,
    "auto_capture": "true",
}


def _load_env_file(env_path: Optional[Path] = None) -> None:
    if env_path is not None:
        if env_path.exists():
            load_dotenv(dotenv_path=env_path)
        return

    repo_env = Path(__file__).resolve().parents[2] / ".env"
    if repo_env.exists():
        load_dotenv(dotenv_path=repo_env)
    else:
        load_dotenv()


def to_bool(value: Optional[str], default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env(name: str) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _default_data_dir() -> Path:
    return Path.home() / ".clipshelf"


@dataclass(frozen=True)
class AppConfig:
    data_dir: Path = field(default_factory=_default_data_dir)
    db_path: Optional[Path] = None
    poll_interval: float = 0.25
    session_timeout: float = 30.0
    capture_initial: bool = False
    simulate_copy: bool = True
    enrichment_workers: int = 4
    api_host: str = "127.0.0.1"
    api_port: int = 3001
    openai_model: str = "gpt-4o-mini"
    openai_api_key: Optional[str] = None

    @property
    def database_path(self) -> Path:
        return self.db_path or self.data_dir / "clipshelf.db"

    @property
    def exports_dir(self) -> Path:
        return self.data_dir / "exports"

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "AppConfig":
        _load_env_file(env_path)

        data_dir_raw = _env("DATA_DIR")
        db_path_raw = _env("DB_PATH")
        poll_raw = _env("POLL_INTERVAL")
        timeout_raw = _env("SESSION_TIMEOUT")
        workers_raw = _env("ENRICHMENT_WORKERS")
        port_raw = _env("API_PORT")

        return cls(
            data_dir=Path(data_dir_raw).expanduser() if data_dir_raw else _default_data_dir(),
            db_path=Path(db_path_raw).expanduser() if db_path_raw else None,
            poll_interval=float(poll_raw) if poll_raw else cls.poll_interval,
            session_timeout=float(timeout_raw) if timeout_raw else cls.session_timeout,
            capture_initial=to_bool(_env("CAPTURE_INITIAL"), default=cls.capture_initial),
            simulate_copy=to_bool(_env("SIMULATE_COPY"), default=cls.simulate_copy),
            enrichment_workers=int(workers_raw) if workers_raw else cls.enrichment_workers,
            api_host=_env("API_HOST") or cls.api_host,
            api_port=int(port_raw) if port_raw else cls.api_port,
            openai_model=_env("OPENAI_MODEL") or cls.openai_model,
            openai_api_key=_env("OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY") or None,
        )

    def with_overrides(self, **overrides: Any) -> "AppConfig":
        """Return a copy with every non-``None`` override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)
