from __future__ import annotations
"""Application settings persistence helpers."""

from dataclasses import dataclass
import json
import logging
from pathlib import Path

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class AppSettings:
    """Simple container for persistent app settings."""

    max_keys: int = 1000
    request_timeout: float = 30.0
    log_level: str = "WARNING"

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level, logging.WARNING)


class SettingsStorage:
    """JSON-backed persistence for :class:`AppSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".object_storage_manager_settings.json"
        self._path = Path(storage_path)

    def load(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return AppSettings()
        if not isinstance(data, dict):
            return AppSettings()

        try:
            max_keys = int(data.get("max_keys", AppSettings.max_keys))
        except (TypeError, ValueError):
            max_keys = AppSettings.max_keys
        if max_keys <= 0:
            max_keys = AppSettings.max_keys

        try:
            timeout = float(data.get("request_timeout", AppSettings.request_timeout))
        except (TypeError, ValueError):
            timeout = AppSettings.request_timeout
        if timeout <= 0:
            timeout = AppSettings.request_timeout

        log_level = data.get("log_level", AppSettings.log_level)
        if not isinstance(log_level, str) or log_level.upper() not in LOG_LEVELS:
            log_level = AppSettings.log_level

        return AppSettings(max_keys=max_keys, request_timeout=timeout, log_level=log_level.upper())

    def save(self, settings: AppSettings) -> None:
        payload = {
            "max_keys": max(int(settings.max_keys), 1),
            "request_timeout": max(float(settings.request_timeout), 1.0),
            "log_level": settings.log_level.upper()
            if settings.log_level.upper() in LOG_LEVELS
            else AppSettings.log_level,
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            return
