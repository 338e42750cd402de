"""Assistant deployment protocol.

The deployment's ai_service endpoint has returned several response shapes
over time. Reply text is pulled out by an ordered list of extractor
functions, each returning the text or None; the first match wins.
New shapes are supported by registering another extractor.
"""

import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..constants import WATSON_AI_APIKEY, WATSON_AI_BASE_URL, WATSON_AI_DEPLOYMENT_ID, WATSON_AI_VERSION
from ..livetypes import ChatMessage, ChatRequest, ParseError

Extractor = Callable[[Any], Optional[str]]


@dataclass(frozen=True)
class AssistantConfig:
    """Configuration for the assistant deployment."""

    api_key: str
    deployment_id: str
    base_url: str = WATSON_AI_BASE_URL
    version: str = WATSON_AI_VERSION

    @property
    def endpoint(self) -> str:
        base = self.base_url.rstrip("/")
        return f"{base}/ml/v4/deployments/{self.deployment_id}/ai_service?version={self.version}"

    @classmethod
    def from_env(cls) -> "AssistantConfig":
        """Create config from environment variables."""
        return cls(
            api_key=os.getenv("WATSON_AI_APIKEY", WATSON_AI_APIKEY),
            deployment_id=os.getenv("WATSON_AI_DEPLOYMENT_ID", WATSON_AI_DEPLOYMENT_ID),
            base_url=os.getenv("WATSON_AI_BASE_URL", WATSON_AI_BASE_URL),
            version=os.getenv("WATSON_AI_VERSION", WATSON_AI_VERSION),
        )

    def is_configured(self) -> bool:
        return bool(self.api_key and self.deployment_id and self.base_url)


def build_chat_request(text: str) -> dict:
    """Build the JSON body for a single user message.

    Raises:
        ValueError: If text is empty or whitespace
    """
    if not text or not text.strip():
        raise ValueError("Please enter a message")
    request = ChatRequest(messages=[ChatMessage(content=text.strip(), role="user")])
    return request.model_dump()


def _non_empty(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_choices(payload: Any) -> Optional[str]:
    """OpenAI-style ``choices[0].message.content``."""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None
    return _non_empty(message.get("content"))


def extract_body(payload: Any) -> Optional[str]:
    """``body`` as a string, or ``body.result``."""
    body = payload.get("body")
    if isinstance(body, dict):
        return _non_empty(body.get("result"))
    return _non_empty(body)


def key_extractor(key: str) -> Extractor:
    """Extractor for a top-level string field."""

    def _extract(payload: Any) -> Optional[str]:
        return _non_empty(payload.get(key))

    _extract.__name__ = f"extract_{key}"
    return _extract


REPLY_EXTRACTORS: list[tuple[str, Extractor]] = [
    ("choices", extract_choices),
    ("result", key_extractor("result")),
    ("body", extract_body),
    ("response", key_extractor("response")),
    ("content", key_extractor("content")),
    ("text", key_extractor("text")),
    ("generated_text", key_extractor("generated_text")),
]


def register_extractor(name: str, fn: Extractor, before: Optional[str] = None) -> None:
    """Add an extractor to REPLY_EXTRACTORS.

    Args:
        name: Identifier reported with matching replies
        fn: Callable returning reply text or None
        before: Insert ahead of this extractor; append when None or unknown
    """
    names = [existing for existing, _ in REPLY_EXTRACTORS]
    if name in names:
        raise ValueError(f"Extractor already registered: {name}")
    if before in names:
        REPLY_EXTRACTORS.insert(names.index(before), (name, fn))
    else:
        REPLY_EXTRACTORS.append((name, fn))


def extract_reply(
    payload: Any,
    extractors: Optional[list[tuple[str, Extractor]]] = None,
) -> tuple[str, str]:
    """Pull reply text from a deployment response.

    Args:
        payload: Decoded JSON response
        extractors: Ordered extractors; defaults to REPLY_EXTRACTORS

    Returns:
        Tuple of (extractor name, reply text)

    Raises:
        ParseError: If no extractor matches
    """
    if isinstance(payload, str):
        text = _non_empty(payload)
        if text:
            return "plain", text
        raise ParseError("Empty assistant response")
    if not isinstance(payload, dict):
        raise ParseError(f"Unexpected assistant response type: {type(payload).__name__}")

    for name, fn in extractors if extractors is not None else REPLY_EXTRACTORS:
        text = fn(payload)
        if text:
            return name, text

    keys = ", ".join(sorted(payload.keys())) or "none"
    raise ParseError(f"No reply text found in assistant response (keys: {keys})")
