"""Ordered advisor chain around an opaque response producer.

Architectural role:
    Provides the generic request/response pipeline the interception stage plugs
    into. Each advisor wraps the rest of the chain: it sees the request on the
    way down (PRE) and the response on the way back up (POST).

Control-flow model:
    1. `AdvisorChain` sorts advisors by `order` once at construction. Lower
       order runs earlier (outermost). `sorted` is stable, so advisors with
       equal order keep their registration order.
    2. `AdvisorChain.call` / `AdvisorChain.stream` create a fresh `ChainCursor`
       per request; each advisor receives the cursor positioned after itself
       and calls `next_call` / `next_stream` to continue.
    3. The cursor past the last advisor runs the terminal model stage, which
       invokes the blocking producer in a worker thread (`asyncio.to_thread`)
       and wraps the produced text into `ChatResponse` objects carrying the
       request's own context dict.

Concurrency:
    The chain itself is immutable and shared between requests. Per-request
    state lives in `ChatRequest.context` only. PRE and POST of one request are
    not guaranteed to run on the same thread, because the model stage hops to
    a worker thread and back.

Streaming:
    Stream paths yield `ChatResponse` deltas. The terminal stage finishes every
    stream with an empty delta whose metadata carries `finish_reason="stop"`.
    `BaseAdvisor.advise_stream` passes deltas through and runs `after` once on
    the aggregate when the stream completes.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, AsyncIterator, Iterable, Protocol

from wordguard.core.types import ChatRequest, ChatResponse


logger = logging.getLogger(__name__)

_STREAM_END = object()


class ResponseProducer(Protocol):
    """Downstream collaborator able to answer a request."""

    def call(self, request: ChatRequest) -> str:
        """Return the full assistant text for `request`."""
        ...

    def stream(self, request: ChatRequest) -> Iterable[str]:
        """Yield assistant text deltas for `request`."""
        ...


class Advisor(Protocol):
    """Minimal interface every pipeline stage implements."""

    name: str
    order: int

    async def advise_call(self, request: ChatRequest, chain: "ChainCursor") -> ChatResponse:
        ...

    def advise_stream(self, request: ChatRequest, chain: "ChainCursor") -> AsyncIterator[ChatResponse]:
        ...


def response_metadata(
    request: ChatRequest,
    finish_reason: str | None,
    completion_id: str | None = None,
    model: str | None = None,
) -> dict[str, Any]:
    """Build response metadata correlated with `request`.

    Always carries `request_id`; carries `conversation_id` when the request
    context defines one.
    """
    metadata = {
        "id": completion_id or f"chatcmpl-{uuid.uuid4().hex}",
        "created": int(time.time()),
        "model": request.model or model,
        "finish_reason": finish_reason,
        "request_id": request.request_id,
    }
    if "conversation_id" in request.context:
        metadata["conversation_id"] = request.context["conversation_id"]
    return metadata


def aggregate_responses(chunks: list[ChatResponse], context: dict[str, Any]) -> ChatResponse:
    """Merge streamed deltas into one response.

    Content is concatenated in order; metadata is merged with later chunks
    overriding earlier keys (so the terminal `finish_reason` wins).
    """
    metadata: dict[str, Any] = {}
    for chunk in chunks:
        metadata.update(chunk.metadata)

    return ChatResponse(
        content="".join(chunk.content for chunk in chunks),
        metadata=metadata,
        context=context,
    )


class BaseAdvisor:
    """Advisor built from a `before` and an `after` hook.

    Subclasses usually override only the hooks. The default hooks are
    pass-through.
    """

    order = 0

    @property
    def name(self) -> str:
        return type(self).__name__

    def before(self, request: ChatRequest, chain: "ChainCursor") -> ChatRequest:
        return request

    def after(self, response: ChatResponse, chain: "ChainCursor") -> ChatResponse:
        return response

    async def advise_call(self, request: ChatRequest, chain: "ChainCursor") -> ChatResponse:
        request = self.before(request, chain)
        response = await chain.next_call(request)
        return self.after(response, chain)

    async def advise_stream(self, request: ChatRequest, chain: "ChainCursor") -> AsyncIterator[ChatResponse]:
        request = self.before(request, chain)
        chunks: list[ChatResponse] = []
        async for chunk in chain.next_stream(request):
            chunks.append(chunk)
            yield chunk
        self.after(aggregate_responses(chunks, request.context), chain)

    def __repr__(self) -> str:
        return f"{self.name}(order={self.order})"


class AdvisorChain:
    """Immutable, reusable ordered pipeline of advisors plus a producer."""

    def __init__(self, advisors: Iterable[Advisor], producer: ResponseProducer, model: str | None = None):
        self._advisors = tuple(sorted(advisors, key=lambda advisor: advisor.order))
        self._producer = producer
        self._model = model

    @property
    def advisors(self) -> tuple:
        return self._advisors

    async def call(self, request: ChatRequest) -> ChatResponse:
        """Run one non-streaming exchange through every advisor."""
        return await ChainCursor(self, 0).next_call(request)

    def stream(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        """Run one streaming exchange through every advisor."""
        return ChainCursor(self, 0).next_stream(request)

    def _metadata(self, request: ChatRequest, finish_reason: str | None, completion_id: str) -> dict[str, Any]:
        return response_metadata(request, finish_reason, completion_id, model=self._model)

    async def _call_model(self, request: ChatRequest) -> ChatResponse:
        text = await asyncio.to_thread(self._producer.call, request)
        return ChatResponse(
            content=str(text or ""),
            metadata=self._metadata(request, "stop", f"chatcmpl-{uuid.uuid4().hex}"),
            context=request.context,
        )

    async def _stream_model(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        completion_id = f"chatcmpl-{uuid.uuid4().hex}"
        iterator = await asyncio.to_thread(lambda: iter(self._producer.stream(request)))

        while True:
            delta = await asyncio.to_thread(next, iterator, _STREAM_END)
            if delta is _STREAM_END:
                break
            if not delta:
                continue
            yield ChatResponse(
                content=str(delta),
                metadata=self._metadata(request, None, completion_id),
                context=request.context,
            )

        yield ChatResponse(
            content="",
            metadata=self._metadata(request, "stop", completion_id),
            context=request.context,
        )


class ChainCursor:
    """Position inside an `AdvisorChain` for one request."""

    def __init__(self, chain: AdvisorChain, position: int):
        self._chain = chain
        self._position = position

    def _next_advisor(self) -> Advisor | None:
        advisors = self._chain.advisors
        if self._position >= len(advisors):
            return None
        return advisors[self._position]

    async def next_call(self, request: ChatRequest) -> ChatResponse:
        advisor = self._next_advisor()
        if advisor is None:
            return await self._chain._call_model(request)
        logger.debug("Advisor %s handling call %s", advisor.name, request.request_id)
        return await advisor.advise_call(request, ChainCursor(self._chain, self._position + 1))

    def next_stream(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        advisor = self._next_advisor()
        if advisor is None:
            return self._chain._stream_model(request)
        logger.debug("Advisor %s handling stream %s", advisor.name, request.request_id)
        return advisor.advise_stream(request, ChainCursor(self._chain, self._position + 1))
