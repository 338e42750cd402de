"""Transport layer for WebSocket connections."""

from .strategies import DEFAULT_STRATEGIES, TokenPlacement, TransportStrategy
from .watson_client import RecognizerState, WatsonSTTClient

__all__ = [
    "DEFAULT_STRATEGIES",
    "TokenPlacement",
    "TransportStrategy",
    "RecognizerState",
    "WatsonSTTClient",
]
