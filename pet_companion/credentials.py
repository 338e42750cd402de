"""IAM credential provider.

Exchanges a long-lived API key for a short-lived bearer token and caches it
until shortly before it expires. Concurrent callers share a single
in-flight exchange.
"""

import asyncio
import json
import logging
from typing import Optional

import aiohttp

from .clock import DEFAULT_CLOCK, Clock
from .livetypes import AuthError, ConnectTimeoutError, ParseError, WatsonConnectionError
from .protocols.iam import (
    Credential,
    IAMConfig,
    build_token_form,
    parse_token_response,
    token_headers,
)

logger = logging.getLogger(__name__)


class IAMTokenProvider:
    """Cached bearer tokens for one API key.

    Usage:
        async with IAMTokenProvider(api_key) as tokens:
            token = await tokens.get_token()
    """

    def __init__(
        self,
        api_key: str,
        config: Optional[IAMConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Clock] = None,
    ):
        self.api_key = api_key
        self.config = config or IAMConfig()
        self.clock = clock or DEFAULT_CLOCK
        self._session = session
        self._owns_session = session is None
        self._credential: Optional[Credential] = None
        self._lock = asyncio.Lock()
        self.fetch_count = 0

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    async def get_token(self) -> str:
        """Return a valid bearer token, exchanging the API key if needed.

        Raises:
            AuthError: If the identity service rejects the key
            ParseError: If the response has no usable token
            WatsonConnectionError: If the identity service is unreachable
        """
        credential = self._credential
        if credential is not None and credential.is_valid(self.clock.now()):
            logger.debug("Using cached IAM token")
            return credential.token

        async with self._lock:
            # Another caller may have refreshed while we waited
            credential = self._credential
            if credential is not None and credential.is_valid(self.clock.now()):
                return credential.token

            self._credential = await self._fetch()
            return self._credential.token

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-exchanges the key."""
        self._credential = None

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "IAMTokenProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _fetch(self) -> Credential:
        if not self.api_key:
            raise AuthError("No API key configured")

        logger.info("Requesting IAM token", extra={"url": self.config.url})
        requested_at = self.clock.now()
        session = await self._get_session()

        try:
            async with session.post(
                self.config.url,
                data=build_token_form(self.api_key),
                headers=token_headers(),
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout),
            ) as resp:
                body = await resp.text()
                status = resp.status
        except asyncio.TimeoutError as e:
            raise ConnectTimeoutError(
                f"Token request timed out after {self.config.request_timeout}s"
            ) from e
        except aiohttp.ClientError as e:
            raise WatsonConnectionError(f"Token request failed: {e}") from e

        self.fetch_count += 1
        if not 200 <= status < 300:
            logger.error(f"IAM token request failed: {status}")
            raise AuthError(f"Token request failed: {status} - {body}", status=status, body=body)

        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            raise ParseError(f"IAM response is not JSON: {body[:100]}") from e

        credential = parse_token_response(payload, requested_at, self.config.safety_margin)
        logger.info(
            "Got IAM token",
            extra={"valid_for": round(credential.expires_at - requested_at)},
        )
        return credential
