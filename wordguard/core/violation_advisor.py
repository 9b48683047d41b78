"""Forbidden-term interception stage.

Purpose:
    Scan the user's latest message before the exchange goes downstream and,
    when a configured term is present, replace whatever comes back with a fixed
    refusal message.

Hook model:
    - PRE (`before`): extract the user text, scan it with the `TermMatcher`,
      and record an `ExchangeContext` in the request's context dict. The
      request is returned unchanged.
    - POST (`after`): pop the `ExchangeContext` from the response's context
      dict. Flagged -> refusal response with the original metadata and context.
      Clean -> original response. The exchange is closed in every path.

Correlation:
    The exchange is stored in `request.context` (which the chain hands to every
    response of the same request) under a key owned by this advisor instance.
    It is never stored per thread or per task, so PRE and POST may run on
    different threads without leaking between requests. A POST without a
    matching PRE is logged as an integrity warning and passed through as clean.

Variants:
    - `block_downstream=False` (default): the downstream exchange always runs;
      its output is discarded when flagged.
    - `block_downstream=True`: a flagged request never reaches the downstream
      chain.
    - Streaming: every downstream delta is buffered and the decision is taken
      on the aggregated response, so a flagged stream never emits partial
      content before the refusal.

Bypass risk:
    Exact, case-insensitive substring matching only. Obfuscation, spacing
    tricks and paraphrases are not detected.
"""

import logging
import uuid
from typing import Any, AsyncIterator, Iterable

from wordguard.config import DEFAULT_REFUSAL_MESSAGE, VIOLATION_ADVISOR_ORDER
from wordguard.core.advisor import BaseAdvisor, ChainCursor, aggregate_responses, response_metadata
from wordguard.core.types import VIOLATION_FLAG_KEY, ChatRequest, ChatResponse, ExchangeContext
from wordguard.errors import ContextCorrelationError
from wordguard.safety.matcher import TermMatcher


logger = logging.getLogger(__name__)


class ViolationWordAdvisor(BaseAdvisor):
    """Interception stage substituting a refusal for flagged requests.

    Args:
        terms: Forbidden terms; ignored when `matcher` is given.
        matcher: Prebuilt matcher to share between advisors.
        refusal_message: Text returned verbatim for flagged requests.
        order: Stage priority (lower runs earlier).
        block_downstream: Skip the downstream chain for flagged requests.

    Raises:
        ConfigurationError: Neither usable terms nor a matcher were supplied.
    """

    def __init__(
        self,
        terms: Iterable[str] | None = None,
        *,
        matcher: TermMatcher | None = None,
        refusal_message: str = DEFAULT_REFUSAL_MESSAGE,
        order: int = VIOLATION_ADVISOR_ORDER,
        block_downstream: bool = False,
    ):
        self.matcher = matcher if matcher is not None else TermMatcher(terms)
        self.refusal_message = refusal_message
        self.order = order
        self.block_downstream = block_downstream
        self._context_key = f"wordguard.violation.{uuid.uuid4().hex}"

    # -----------------------------------------------------
    # PRE
    # -----------------------------------------------------

    def before(self, request: ChatRequest, chain: ChainCursor) -> ChatRequest:
        stale = request.context.get(self._context_key)
        if stale is not None:
            logger.warning(
                "Request %s already carries an open exchange (%s); replacing it",
                request.request_id,
                stale.state.value,
            )

        exchange = ExchangeContext(request_id=request.request_id, user_text=request.user_text())

        match = None
        if exchange.user_text.strip():
            match = self.matcher.scan(exchange.user_text)
        exchange.record_scan(match)

        if match is not None:
            logger.info(
                "Forbidden term detected in request %s: term=%r offset=%d",
                request.request_id,
                match.term,
                match.start,
            )

        request.context[self._context_key] = exchange
        # Sticky across stacked interception stages.
        request.context[VIOLATION_FLAG_KEY] = bool(request.context.get(VIOLATION_FLAG_KEY)) or exchange.flagged
        return request

    # -----------------------------------------------------
    # POST
    # -----------------------------------------------------

    def after(self, response: ChatResponse, chain: ChainCursor) -> ChatResponse:
        try:
            exchange = self._take_exchange(response.context)
            exchange.mark_responded()
        except ContextCorrelationError as err:
            logger.warning("Exchange correlation failed, passing response through: %s", err)
            return response

        flagged = exchange.flagged
        exchange.close()

        if flagged:
            return self.refusal_response(response)
        return response

    def _take_exchange(self, context: dict[str, Any]) -> ExchangeContext:
        exchange = context.pop(self._context_key, None)
        if not isinstance(exchange, ExchangeContext):
            raise ContextCorrelationError("No exchange context recorded for this response")
        return exchange

    def _discard(self, context: dict[str, Any]) -> None:
        exchange = context.pop(self._context_key, None)
        if isinstance(exchange, ExchangeContext):
            exchange.close()

    def _is_flagged(self, request: ChatRequest) -> bool:
        exchange = request.context.get(self._context_key)
        return isinstance(exchange, ExchangeContext) and exchange.flagged

    def refusal_response(self, response: ChatResponse) -> ChatResponse:
        """Replace the content of `response`, keeping metadata and context."""
        metadata = dict(response.metadata)
        if metadata.get("finish_reason") is None:
            metadata["finish_reason"] = "stop"
        return ChatResponse(content=self.refusal_message, metadata=metadata, context=response.context)

    def _blocked_response(self, request: ChatRequest) -> ChatResponse:
        logger.info("Skipping downstream exchange for flagged request %s", request.request_id)
        return ChatResponse(
            content="",
            metadata=response_metadata(request, "stop"),
            context=request.context,
        )

    # -----------------------------------------------------
    # Call / stream
    # -----------------------------------------------------

    async def advise_call(self, request: ChatRequest, chain: ChainCursor) -> ChatResponse:
        request = self.before(request, chain)
        try:
            if self.block_downstream and self._is_flagged(request):
                response = self._blocked_response(request)
            else:
                response = await chain.next_call(request)
            return self.after(response, chain)
        finally:
            self._discard(request.context)

    async def advise_stream(self, request: ChatRequest, chain: ChainCursor) -> AsyncIterator[ChatResponse]:
        request = self.before(request, chain)
        try:
            if self.block_downstream and self._is_flagged(request):
                chunks = []
                aggregated = self._blocked_response(request)
            else:
                chunks = [chunk async for chunk in chain.next_stream(request)]
                aggregated = aggregate_responses(chunks, request.context)

            final = self.after(aggregated, chain)

            if final is aggregated and chunks:
                for chunk in chunks:
                    yield chunk
            else:
                yield final
        finally:
            self._discard(request.context)
