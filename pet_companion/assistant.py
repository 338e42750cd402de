"""Chat assistant client for the Watson ML deployment's ai_service endpoint."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from .constants import ASSISTANT_GREETING, ASSISTANT_REQUEST_TIMEOUT
from .credentials import IAMTokenProvider
from .livetypes import (
    AuthError,
    ConnectTimeoutError,
    ParseError,
    RemoteError,
    WatsonConnectionError,
)
from .protocols.assistant import AssistantConfig, build_chat_request, extract_reply

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssistantReply:
    """Reply text plus which extractor found it."""

    text: str
    extractor: str
    raw: Any = None


class AssistantClient:
    """Sends single-turn messages to the assistant deployment.

    Usage:
        async with IAMTokenProvider(config.api_key) as tokens:
            client = AssistantClient(config, tokens)
            reply = await client.send("How is my pet doing?")
    """

    def __init__(
        self,
        config: AssistantConfig,
        tokens: IAMTokenProvider,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = ASSISTANT_REQUEST_TIMEOUT,
    ):
        self.config = config
        self.tokens = tokens
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    async def send(self, text: str) -> AssistantReply:
        """Send one user message and return the assistant's reply.

        Raises:
            ValueError: If text is empty
            AuthError: If the token is rejected (the cached token is dropped)
            RemoteError: On any other non-2xx response
            ParseError: If the body is not JSON or holds no reply text
            WatsonConnectionError: If the endpoint is unreachable
        """
        body = build_chat_request(text)
        token = await self.tokens.get_token()
        session = await self._get_session()

        logger.info(
            "Sending message to assistant",
            extra={"deployment": self.config.deployment_id, "chars": len(text)},
        )

        try:
            async with session.post(
                self.config.endpoint,
                json=body,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as resp:
                status = resp.status
                raw_body = await resp.text()
        except asyncio.TimeoutError as e:
            raise ConnectTimeoutError(
                f"Assistant request timed out after {self.request_timeout:g}s"
            ) from e
        except aiohttp.ClientError as e:
            raise WatsonConnectionError(f"Assistant request failed: {e}") from e

        if status in (401, 403):
            self.tokens.invalidate()
            logger.error(f"Assistant rejected credentials: {status}")
            raise AuthError(f"Assistant authorization failed: {status}", status=status, body=raw_body)

        if not 200 <= status < 300:
            logger.error(f"Assistant request failed: {status}")
            raise RemoteError(f"Assistant request failed: {status} - {raw_body}", status=status)

        try:
            payload = json.loads(raw_body)
        except json.JSONDecodeError as e:
            raise ParseError(f"Assistant response is not JSON: {raw_body[:100]}") from e

        extractor, reply = extract_reply(payload)
        logger.debug(f"Assistant reply matched extractor '{extractor}'")
        return AssistantReply(text=reply, extractor=extractor, raw=payload)

    async def self_test(self) -> AssistantReply:
        """Send the fixed greeting to check the deployment end to end."""
        return await self.send(ASSISTANT_GREETING)

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "AssistantClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session
