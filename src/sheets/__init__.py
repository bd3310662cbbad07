"""Google Sheets access layer: credentials, transport, caching and row translation."""

from .cache import SheetsCache, TTLCache
from .errors import BadRequestError, ConfigurationError, SheetsProxyError, TransportError
from .singleflight import SingleFlight
from .tokens import TokenManager
from .transport import SheetProperties, SheetsTransport

__all__ = [
    "BadRequestError",
    "ConfigurationError",
    "SheetProperties",
    "SheetsCache",
    "SheetsProxyError",
    "SheetsTransport",
    "SingleFlight",
    "TTLCache",
    "TokenManager",
    "TransportError",
]
