"""Error taxonomy shared by the Sheets proxy layers."""

from typing import Optional


class SheetsProxyError(Exception):
    """Base class for every error surfaced by the proxy."""

    kind = "internal"

    def to_payload(self) -> dict:
        return {"error": str(self), "kind": self.kind}


class ConfigurationError(SheetsProxyError):
    """Credentials or workbook id are missing or unusable. Never retried."""

    kind = "configuration"


class TransportError(SheetsProxyError):
    """An upstream HTTP call did not succeed."""

    kind = "transport"

    def __init__(self, message: str, status: int = 0, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def is_rate_limited(self) -> bool:
        if self.status == 429:
            return True
        return any(marker in self.body for marker in RATE_LIMIT_MARKERS)

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["upstreamStatus"] = self.status
        return payload


class BadRequestError(SheetsProxyError):
    """The request envelope is incomplete or names an unknown action."""

    kind = "bad_request"

    def __init__(self, message: str, action: Optional[str] = None) -> None:
        super().__init__(message)
        self.action = action


RATE_LIMIT_MARKERS = ("RESOURCE_EXHAUSTED", "rateLimitExceeded", "Quota exceeded")

__all__ = [
    "BadRequestError",
    "ConfigurationError",
    "RATE_LIMIT_MARKERS",
    "SheetsProxyError",
    "TransportError",
]
