import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx
from google.auth import crypt

from src.sheets.credentials import TOKEN_URI, ServiceAccount, build_assertion, load_signer
from src.sheets.errors import TransportError
from src.sheets.singleflight import SingleFlight


logger = logging.getLogger(__name__)

GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
REFRESH_MARGIN = 60
MIN_TOKEN_LIFETIME = 60


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float

    def remaining(self, now: float) -> float:
        return self.expires_at - now


class TokenManager:
    """Owns the service-account bearer token.

    A cached token is handed out only while it has at least
    ``REFRESH_MARGIN`` seconds left. Refreshes are coalesced: concurrent
    callers all await the one outstanding token exchange. Credentials are
    read and parsed at first use, so a missing key surfaces as a
    ``ConfigurationError`` on the first request rather than at startup.
    """

    def __init__(
        self,
        service_account_email: Optional[str],
        private_key: Optional[str],
        client: httpx.AsyncClient,
        *,
        token_uri: str = TOKEN_URI,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._email = service_account_email
        self._raw_key = private_key
        self._client = client
        self._token_uri = token_uri
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._credentials: Optional[Tuple[ServiceAccount, crypt.Signer]] = None
        self._flights: SingleFlight[AccessToken] = SingleFlight()

    @property
    def cached_token(self) -> Optional[AccessToken]:
        return self._token

    async def get_access_token(self) -> str:
        token = self._token
        if token is not None and token.remaining(self._clock()) >= REFRESH_MARGIN:
            return token.value

        refreshed = await self._flights.do("access_token", self._refresh)
        return refreshed.value

    def invalidate(self) -> None:
        if self._token is not None:
            logger.info("Dropping cached access token")
        self._token = None

    def _load_credentials(self) -> Tuple[ServiceAccount, crypt.Signer]:
        if self._credentials is None:
            account = ServiceAccount.from_env_values(self._email, self._raw_key)
            self._credentials = (account, load_signer(account.private_key))
        return self._credentials

    async def _refresh(self) -> AccessToken:
        account, signer = self._load_credentials()
        now = int(self._clock())
        assertion = build_assertion(account, signer, now)

        logger.info("Requesting access token", extra={"issuer": account.email})
        try:
            response = await self._client.post(
                self._token_uri,
                data={"grant_type": GRANT_TYPE, "assertion": assertion},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to get access token: {exc}") from exc

        if not response.is_success:
            logger.error("Token exchange failed", extra={"status": response.status_code})
            raise TransportError(
                f"Failed to get access token: {response.text}",
                status=response.status_code,
                body=response.text,
            )

        payload = response.json()
        value = payload.get("access_token")
        if not value:
            raise TransportError(
                "Token endpoint response did not include an access_token",
                status=response.status_code,
                body=response.text,
            )

        lifetime = max(int(payload.get("expires_in", 3600)), MIN_TOKEN_LIFETIME)
        token = AccessToken(value=value, expires_at=now + lifetime)
        self._token = token
        logger.info("Access token obtained", extra={"expires_in": lifetime})
        return token


__all__ = ["AccessToken", "GRANT_TYPE", "MIN_TOKEN_LIFETIME", "REFRESH_MARGIN", "TokenManager"]
