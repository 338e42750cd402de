"""IBM Cloud IAM token exchange protocol.

Pure functions for building the token request and turning the response
into a cached Credential. No I/O.
"""

import os
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from ..constants import (
    IAM_DEFAULT_LIFETIME,
    IAM_GRANT_TYPE,
    IAM_REQUEST_TIMEOUT,
    TOKEN_SAFETY_MARGIN,
    WATSON_IAM_URL,
)
from ..livetypes import IAMTokenResponse, ParseError


@dataclass(frozen=True)
class IAMConfig:
    """Identity endpoint settings."""

    url: str = WATSON_IAM_URL
    safety_margin: float = TOKEN_SAFETY_MARGIN
    request_timeout: float = IAM_REQUEST_TIMEOUT

    @classmethod
    def from_env(cls) -> "IAMConfig":
        return cls(url=os.getenv("WATSON_IAM_URL", WATSON_IAM_URL))


@dataclass(frozen=True)
class Credential:
    """Short-lived bearer token and the clock time it stops being usable."""

    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return bool(self.token) and now < self.expires_at

    def __repr__(self) -> str:
        return f"Credential(token='{self.token[:6]}...', expires_at={self.expires_at})"


def build_token_form(api_key: str) -> dict[str, str]:
    """Form fields for the apikey grant."""
    return {"grant_type": IAM_GRANT_TYPE, "apikey": api_key}


def token_headers() -> dict[str, str]:
    return {
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept": "application/json",
    }


def parse_token_response(
    payload: Any,
    now: float,
    safety_margin: float = TOKEN_SAFETY_MARGIN,
) -> Credential:
    """Turn an IAM JSON payload into a Credential.

    The credential expires `safety_margin` seconds before the server's
    expiry so a token never lapses mid-request.

    Args:
        payload: Decoded JSON body
        now: Current clock time in seconds
        safety_margin: Seconds subtracted from the server lifetime

    Returns:
        Credential with expires_at in clock seconds

    Raises:
        ParseError: If the payload has no access_token

    Examples:
        >>> parse_token_response({"access_token": "abc", "expires_in": 3600}, now=0)
        Credential(token='abc...', expires_at=3300.0)
    """
    try:
        data = IAMTokenResponse.model_validate(payload)
    except ValidationError as e:
        raise ParseError(f"Invalid IAM token response: {e.errors()[0]['msg']}") from e

    lifetime = data.expires_in if data.expires_in is not None else IAM_DEFAULT_LIFETIME
    ttl = max(float(lifetime) - safety_margin, 0.0)
    return Credential(token=data.access_token, expires_at=now + ttl)
