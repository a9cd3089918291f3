import os
from dataclasses import dataclass, fields
from typing import Any, Optional

from endpoints import BASE_URL

DEFAULT_SESSION_PATH = ".mediadash/session.json"
DEFAULT_HTTP_LOG = "mediadash_http.log"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    api_url: str = BASE_URL
    timeout: float = 30.0
    search_debounce: float = 0.5
    copied_reset: float = 2.0
    max_upload_mb: int = 100
    session_path: str = DEFAULT_SESSION_PATH
    http_log_path: Optional[str] = None

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls, **overrides: Any) -> "Settings":
        http_log = os.getenv("MEDIADASH_HTTP_LOG")
        if http_log is None:
            http_log = os.path.join(os.getcwd(), DEFAULT_HTTP_LOG)
        settings = cls(
            api_url=os.getenv("MEDIADASH_API_URL") or BASE_URL,
            timeout=_env_float("MEDIADASH_TIMEOUT", 30.0),
            search_debounce=_env_float("MEDIADASH_SEARCH_DEBOUNCE", 0.5),
            copied_reset=_env_float("MEDIADASH_COPIED_RESET", 2.0),
            max_upload_mb=_env_int("MEDIADASH_MAX_UPLOAD_MB", 100),
            session_path=os.getenv("MEDIADASH_SESSION_PATH") or DEFAULT_SESSION_PATH,
            http_log_path=http_log or None,
        )
        known = {f.name for f in fields(cls)}
        for key, value in overrides.items():
            if key not in known:
                raise TypeError(f"Unknown setting: {key}")
            setattr(settings, key, value)
        return settings
