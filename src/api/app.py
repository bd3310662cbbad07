"""FastAPI entry point exposing the Sheets proxy as one JSON endpoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from src.api.dispatcher import Dispatcher, ProxyRequest
from src.config import Config, load_config
from src.logging_config import configure_logging
from src.sheets.cache import SheetsCache
from src.sheets.errors import BadRequestError, SheetsProxyError
from src.sheets.tokens import TokenManager
from src.sheets.transport import SheetsTransport


logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


class DispatcherProvider:
    """Builds the dispatcher on first use.

    The workbook id is only checked here, so a process started without it
    answers each request with a configuration error instead of failing to boot.
    """

    def __init__(self, config: Config, client: httpx.AsyncClient) -> None:
        self.config = config
        self.client = client
        self.tokens = TokenManager(config.service_account_email, config.private_key, client)
        self._dispatcher: Optional[Dispatcher] = None

    def __call__(self) -> Dispatcher:
        if self._dispatcher is None:
            transport = SheetsTransport(
                self.config.require_spreadsheet_id(),
                self.tokens,
                self.client,
                rate_limit_backoff=self.config.rate_limit_backoff,
            )
            cache = SheetsCache(
                transport,
                data_ttl=self.config.data_cache_ttl,
                no_cache_ttl=self.config.no_cache_ttl,
                schema_ttl=self.config.schema_cache_ttl,
            )
            self._dispatcher = Dispatcher(cache)
        return self._dispatcher


def create_app(config: Optional[Config] = None, dispatcher: Optional[Dispatcher] = None) -> FastAPI:
    """Create the proxy application.

    Passing ``dispatcher`` skips building the HTTP client, token manager and
    caches.
    """

    if config is None:
        config = load_config()
        configure_logging(config.log_level, config.timezone)

    client: Optional[httpx.AsyncClient] = None
    if dispatcher is None:
        client = httpx.AsyncClient(timeout=config.http_timeout)
        get_dispatcher = DispatcherProvider(config, client)
    else:
        get_dispatcher = lambda: dispatcher  # noqa: E731

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        if client is not None:
            await client.aclose()

    app = FastAPI(
        title="Fleet Sheets Proxy",
        description="Cached Google Sheets CRUD proxy for the fleet-management front end",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.get_dispatcher = get_dispatcher

    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response

    @app.post("/")
    @app.post("/google-sheets")
    async def handle(request: Request) -> JSONResponse:
        try:
            payload = await _read_json(request)
            proxy_request = ProxyRequest.from_payload(payload)
            result = await get_dispatcher().dispatch(proxy_request)
        except SheetsProxyError as exc:
            logger.error("Error in google-sheets proxy: %s", exc, extra={"kind": exc.kind})
            return JSONResponse(exc.to_payload(), status_code=500)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error in google-sheets proxy")
            return JSONResponse(
                {"error": str(exc) or "Unknown error occurred", "kind": "internal"},
                status_code=500,
            )

        return JSONResponse(result)

    return app


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise BadRequestError("Request body must be valid JSON") from exc
