"""Troubleshooting advice and connection probes.

Error kinds stay machine-readable; the human-readable advice for each kind
lives here and is looked up only at the presentation edge.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from .livetypes import ErrorKind, StrategiesExhaustedError, TransportAttempt, VoiceError
from .transport.strategies import QUERY_TOKEN, TransportStrategy

logger = logging.getLogger(__name__)

ADVICE: dict[ErrorKind, str] = {
    ErrorKind.PERMISSION_DENIED: (
        "Allow microphone access for this app in the system settings, then try again."
    ),
    ErrorKind.ALREADY_ACTIVE: "Wait for the current recording to finish.",
    ErrorKind.AUTH: (
        "Check the API key in the IBM Cloud console and verify the service "
        "is active and not expired."
    ),
    ErrorKind.CONNECTION: (
        "Switch to a different network, turn off any VPN, or check whether a "
        "firewall blocks the speech service."
    ),
    ErrorKind.CONNECT_TIMEOUT: (
        "The speech service did not answer in time. A firewall may be blocking it; "
        "try mobile data instead of WiFi."
    ),
    ErrorKind.TRANSPORT: "The connection dropped. Try again on a more stable network.",
    ErrorKind.TIMEOUT: "No response from the speech service. Try a shorter recording.",
    ErrorKind.REMOTE: (
        "The speech service reported an error. Verify the service status and "
        "region in the IBM Cloud console."
    ),
    ErrorKind.TOO_LARGE: "The recording is too large. Record a shorter message.",
    ErrorKind.NO_SPEECH: "No speech was detected. Speak clearly and closer to the microphone.",
    ErrorKind.PARSE: "The service returned an unexpected response. Try again later.",
    ErrorKind.EXHAUSTED: (
        "Every connection method failed. Check your network, the API key and "
        "the service region, then try again."
    ),
}


def advice_for(kind: Optional[ErrorKind]) -> str:
    if kind is None:
        return ""
    return ADVICE.get(kind, "")


def describe_failure(error: BaseException) -> str:
    """One-line summary of a failure, e.g. ``connection: refused``."""
    if isinstance(error, VoiceError):
        return f"{error.kind.value}: {error}"
    return f"unexpected: {type(error).__name__}: {error}"


def summarize_attempts(attempts: Sequence[TransportAttempt]) -> str:
    """One line per attempt, in the order they ran.

    Examples:
        >>> summarize_attempts([TransportAttempt("query-token", 120, "transport", "closed")])
        '1. query-token: transport after 120ms (closed)'
    """
    lines = []
    for index, attempt in enumerate(attempts, start=1):
        line = f"{index}. {attempt.method}: {attempt.outcome} after {attempt.elapsed_ms}ms"
        if attempt.message:
            line += f" ({attempt.message})"
        lines.append(line)
    return "\n".join(lines)


class TokenSource(Protocol):
    async def get_token(self) -> str: ...


class ConnectionProber(Protocol):
    async def probe(self, token: str, strategy: TransportStrategy) -> int: ...


@dataclass(frozen=True)
class ProbeStep:
    """Result of one step of a connection check."""

    name: str
    ok: bool
    elapsed_ms: int = 0
    error_kind: Optional[ErrorKind] = None
    message: str = ""


@dataclass
class ProbeReport:
    """Structured result of probe_connection."""

    strategy: str
    steps: list[ProbeStep] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.steps) and all(step.ok for step in self.steps)

    @property
    def failed_step(self) -> Optional[ProbeStep]:
        return next((step for step in self.steps if not step.ok), None)

    @property
    def advice(self) -> str:
        failed = self.failed_step
        return advice_for(failed.error_kind) if failed else ""

    def summary(self) -> str:
        lines = [f"Connection check ({self.strategy})"]
        for step in self.steps:
            mark = "OK" if step.ok else "FAILED"
            line = f"{step.name}: {mark} ({step.elapsed_ms}ms)"
            if step.message:
                line += f" - {step.message}"
            lines.append(line)
        return "\n".join(lines)


async def probe_connection(
    tokens: TokenSource,
    client: ConnectionProber,
    strategy: TransportStrategy = QUERY_TOKEN,
) -> ProbeReport:
    """Check token acquisition, then the socket open, stopping at the first failure."""
    report = ProbeReport(strategy=strategy.name)

    started = time.monotonic()
    try:
        token = await tokens.get_token()
    except VoiceError as e:
        report.steps.append(_failed_step("token", started, e))
        logger.warning(f"Connection check failed at token step: {e}")
        return report
    report.steps.append(ProbeStep("token", ok=True, elapsed_ms=_ms_since(started)))

    started = time.monotonic()
    try:
        open_ms = await client.probe(token, strategy)
    except VoiceError as e:
        report.steps.append(_failed_step("socket", started, e))
        logger.warning(f"Connection check failed at socket step: {e}")
        return report
    report.steps.append(ProbeStep("socket", ok=True, elapsed_ms=open_ms))

    logger.info(f"Connection check passed via {strategy.name}")
    return report


def _failed_step(name: str, started: float, error: VoiceError) -> ProbeStep:
    message = str(error)
    if isinstance(error, StrategiesExhaustedError):
        message = error.last_error
    return ProbeStep(
        name,
        ok=False,
        elapsed_ms=_ms_since(started),
        error_kind=error.kind,
        message=message,
    )


def _ms_since(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
