"""Protocol definitions for external services."""

from .assistant import AssistantConfig, build_chat_request, extract_reply, register_extractor
from .iam import Credential, IAMConfig, build_token_form, parse_token_response
from .watson import (
    RecognitionParams,
    WatsonMessage,
    WatsonMessageType,
    WatsonSTTConfig,
    build_start_frame,
    build_stop_frame,
    get_watson_ws_url,
    parse_watson_message,
    redact_url,
)

__all__ = [
    "AssistantConfig",
    "build_chat_request",
    "extract_reply",
    "register_extractor",
    "Credential",
    "IAMConfig",
    "build_token_form",
    "parse_token_response",
    "RecognitionParams",
    "WatsonMessage",
    "WatsonMessageType",
    "WatsonSTTConfig",
    "build_start_frame",
    "build_stop_frame",
    "get_watson_ws_url",
    "parse_watson_message",
    "redact_url",
]
