import os
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from src.sheets.errors import ConfigurationError


@dataclass
class Config:
    """Centralized configuration loaded from environment variables.

    Credentials and the workbook id are optional: the proxy
    starts without them and reports a ``ConfigurationError`` on the first
    request that needs them.
    """

    service_account_email: Optional[str] = None
    private_key: Optional[str] = None
    spreadsheet_id: Optional[str] = None
    log_level: str = "INFO"
    timezone: str = "UTC"
    data_cache_ttl: float = 15.0
    no_cache_ttl: float = 1.5
    schema_cache_ttl: float = 300.0
    rate_limit_backoff: float = 1.0
    http_timeout: float = 30.0

    def require_spreadsheet_id(self) -> str:
        if not self.spreadsheet_id:
            raise ConfigurationError("GOOGLE_SHEET_ID not configured")
        return self.spreadsheet_id


def load_config() -> Config:
    """Load configuration values from environment variables.

    Values from a local `.env` file are loaded first to simplify
    development workflows.
    """

    load_dotenv()

    timezone = os.getenv("TIMEZONE", "UTC")
    _validate_timezone(timezone)

    return Config(
        service_account_email=_optional("GOOGLE_SERVICE_ACCOUNT_EMAIL"),
        private_key=_optional("GOOGLE_PRIVATE_KEY"),
        spreadsheet_id=_optional("GOOGLE_SHEET_ID"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        timezone=timezone,
        data_cache_ttl=_parse_positive_float("SHEETS_DATA_CACHE_TTL", 15.0),
        no_cache_ttl=_parse_positive_float("SHEETS_NO_CACHE_TTL", 1.5),
        schema_cache_ttl=_parse_positive_float("SHEETS_SCHEMA_CACHE_TTL", 300.0),
        rate_limit_backoff=_parse_non_negative_float("SHEETS_RATE_LIMIT_BACKOFF", 1.0),
        http_timeout=_parse_positive_float("SHEETS_HTTP_TIMEOUT", 30.0),
    )


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _parse_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds") from exc


def _parse_positive_float(name: str, default: float) -> float:
    parsed = _parse_float(name, default)
    if parsed <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return parsed


def _parse_non_negative_float(name: str, default: float) -> float:
    parsed = _parse_float(name, default)
    if parsed < 0:
        raise ValueError(f"{name} must not be negative")
    return parsed


def _validate_timezone(value: str) -> None:
    """Ensure provided timezone is valid for ZoneInfo."""

    try:
        ZoneInfo(value)
    except Exception as exc:  # noqa: BLE001
        raise ValueError("TIMEZONE must be a valid IANA timezone, e.g., 'UTC' or 'America/Sao_Paulo'") from exc
