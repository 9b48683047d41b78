"""Request/response data contracts for the advisor chain.

Architectural role:
    Defines the values threaded through `wordguard.core.advisor.AdvisorChain`:
    chat messages, the outbound request, the (possibly partial) response, and
    the per-request `ExchangeContext` used by the interception stage.

Correlation model:
    Every `ChatRequest` owns a `context` dict. The chain hands that *same* dict
    to every `ChatResponse` produced for the request, so a value written into
    it during the PRE phase is visible in the POST phase no matter which thread
    or task runs either phase. Nothing here is keyed by thread or task.

Determinism:
    Pure data containers. `request_id` is random (`uuid4`) per request.
"""

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from wordguard.errors import ContextCorrelationError
from wordguard.safety.matcher import Match


@dataclass
class ChatMessage:
    """One chat turn (`system`, `user` or `assistant`)."""

    role: str
    content: str


@dataclass
class ChatRequest:
    """Outbound chat request travelling down the advisor chain.

    Attributes:
        messages: Ordered conversation turns sent to the model.
        context: Per-request slot shared with every response of this request.
        request_id: Unique identifier generated per request.
        model: Optional model override forwarded to the producer.
    """

    messages: list[ChatMessage] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    model: str | None = None

    def user_text(self) -> str:
        """Return the content of the latest user message, or `""`."""
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content or ""
        return ""

    def with_messages(self, messages: list[ChatMessage]) -> "ChatRequest":
        """Copy the request with new messages, keeping the same context dict."""
        return replace(self, messages=list(messages))


@dataclass
class ChatResponse:
    """Model response, or one streamed delta of it.

    Attributes:
        content: Assistant text (a delta when streamed).
        metadata: Non-content fields (`id`, `model`, `finish_reason`, ...).
        context: The originating request's context dict.
    """

    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def finish_reason(self) -> str | None:
        return self.metadata.get("finish_reason")


class ExchangeState(Enum):
    """Lifecycle of one request inside the interception stage."""

    CREATED = "created"
    SCANNED_CLEAN = "scanned_clean"
    SCANNED_FLAGGED = "scanned_flagged"
    RESPONDED = "responded"
    CLOSED = "closed"


_TRANSITIONS = {
    ExchangeState.CREATED: {
        ExchangeState.SCANNED_CLEAN,
        ExchangeState.SCANNED_FLAGGED,
        ExchangeState.CLOSED,
    },
    ExchangeState.SCANNED_CLEAN: {ExchangeState.RESPONDED, ExchangeState.CLOSED},
    ExchangeState.SCANNED_FLAGGED: {ExchangeState.RESPONDED, ExchangeState.CLOSED},
    ExchangeState.RESPONDED: {ExchangeState.CLOSED},
    ExchangeState.CLOSED: set(),
}


@dataclass
class ExchangeContext:
    """Scan outcome of exactly one request.

    Created in PRE, read and closed in POST. There is no retry state: a scan is
    recorded once and a closed exchange cannot be reopened.
    """

    request_id: str
    user_text: str = ""
    match: Match | None = None
    state: ExchangeState = ExchangeState.CREATED

    @property
    def flagged(self) -> bool:
        return self.match is not None

    def _advance(self, target: ExchangeState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise ContextCorrelationError(
                f"Exchange {self.request_id}: illegal transition "
                f"{self.state.value} -> {target.value}"
            )
        self.state = target

    def record_scan(self, match: Match | None) -> None:
        self.match = match
        if match is None:
            self._advance(ExchangeState.SCANNED_CLEAN)
        else:
            self._advance(ExchangeState.SCANNED_FLAGGED)

    def mark_responded(self) -> None:
        self._advance(ExchangeState.RESPONDED)

    def close(self) -> None:
        if self.state is not ExchangeState.CLOSED:
            self._advance(ExchangeState.CLOSED)


# Set by the interception stage in PRE; later stages read it to avoid
# persisting flagged content.
VIOLATION_FLAG_KEY = "violation_flagged"
