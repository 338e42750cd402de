"""Transport strategies for reaching the speech service.

Each strategy is one combination of credential placement, request headers
and chunking. The fallback chain tries them in order. The credential only
ever travels as a connection parameter or header, never inside a frame.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

MOBILE_SAFARI_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class TokenPlacement(str, Enum):
    QUERY = "query"     # ?access_token=... on the WebSocket URL
    BEARER = "bearer"   # Authorization: Bearer ... handshake header


@dataclass(frozen=True)
class TransportStrategy:
    """One way of opening the recognizer connection."""

    name: str
    auth: TokenPlacement = TokenPlacement.QUERY
    headers: tuple[tuple[str, str], ...] = field(default_factory=tuple)
    chunk_size: Optional[int] = None
    connect_timeout: Optional[float] = None

    def handshake_headers(self, token: str) -> dict[str, str]:
        """Headers for the opening handshake."""
        headers = dict(self.headers)
        if self.auth == TokenPlacement.BEARER:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def url_token(self, token: str) -> Optional[str]:
        """Token to embed in the URL, if this strategy uses the query string."""
        return token if self.auth == TokenPlacement.QUERY else None


QUERY_TOKEN = TransportStrategy(name="query-token")

BEARER_HEADER = TransportStrategy(
    name="bearer-header",
    auth=TokenPlacement.BEARER,
    headers=(("Accept", "application/json"),),
)

MOBILE_BROWSER = TransportStrategy(
    name="mobile-browser",
    headers=(
        ("User-Agent", MOBILE_SAFARI_UA),
        ("Accept-Language", "en-US,en;q=0.9"),
    ),
    chunk_size=8 * 1024,
)

DEFAULT_STRATEGIES: tuple[TransportStrategy, ...] = (
    QUERY_TOKEN,
    BEARER_HEADER,
    MOBILE_BROWSER,
)
