from __future__ import annotations
import json
import logging
import os
from typing import Any, Dict

from pydantic import BaseModel

from .errors import ConfigError
from .sheets import SheetStore
from .storage import DrawStore, MemoryStore


class Settings(BaseModel):
    store_backend: str = "sheets"
    sheet_id: str | None = None
    client_email: str | None = None
    private_key: str | None = None
    credentials_json: str | None = None
    allowed_origin: str = "*"
    timezone: str = "Asia/Taipei"
    store_timeout: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        try:
            timeout = float(os.getenv("STORE_TIMEOUT") or 10.0)
        except ValueError as e:
            raise ConfigError(f"STORE_TIMEOUT must be a number of seconds: {e}") from e
        level = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ConfigError(f"LOG_LEVEL {level!r} is not a logging level")
        key = os.getenv("GOOGLE_PRIVATE_KEY")
        if key:
            # hosting dashboards often store the PEM with literal "\n"
            key = key.replace("\\n", "\n")
        return cls(
            store_backend=os.getenv("STORE_BACKEND", "sheets").strip().lower(),
            sheet_id=os.getenv("GOOGLE_SHEET_ID") or None,
            client_email=os.getenv("GOOGLE_CLIENT_EMAIL") or None,
            private_key=key or None,
            credentials_json=os.getenv("GOOGLE_CREDENTIALS") or None,
            allowed_origin=os.getenv("ALLOWED_ORIGIN") or "*",
            timezone=os.getenv("CAMPAIGN_TZ") or "Asia/Taipei",
            store_timeout=timeout,
            log_level=level,
        )

    def service_account_info(self) -> Dict[str, Any]:
        if self.credentials_json:
            try:
                return json.loads(self.credentials_json)
            except ValueError as e:
                raise ConfigError(f"GOOGLE_CREDENTIALS is not valid JSON: {e}") from e
        if not self.client_email or not self.private_key:
            raise ConfigError("missing GOOGLE_CLIENT_EMAIL or GOOGLE_PRIVATE_KEY")
        return {
            "type": "service_account",
            "client_email": self.client_email,
            "private_key": self.private_key,
            "token_uri": "https://oauth2.googleapis.com/token",
        }


def build_store(settings: Settings) -> DrawStore:
    """Open the configured store; any failure here should stop the process."""
    if settings.store_backend == "memory":
        return MemoryStore(tz=settings.timezone)
    if settings.store_backend != "sheets":
        raise ConfigError(f"unknown STORE_BACKEND: {settings.store_backend!r}")
    if not settings.sheet_id:
        raise ConfigError("missing GOOGLE_SHEET_ID")
    info = settings.service_account_info()
    try:
        return SheetStore.connect(settings.sheet_id, info,
                                  timeout=settings.store_timeout, tz=settings.timezone)
    except Exception as e:
        raise ConfigError(f"cannot open spreadsheet {settings.sheet_id}: {e}") from e
