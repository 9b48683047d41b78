"""
HTTP API adapter for the guarded chat engine.

Architectural role:
- Expose OpenAI-compatible HTTP interfaces.
- Enforce adapter-level input validation.
- Delegate generation work to `wordguard.core.engine.ChatApp`.
- Normalize engine output to response transport contracts (JSON or SSE).

Endpoint responsibilities:
- `GET /health`: liveness plus configured term count.
- `GET /v1/models`: expose the configured model name.
- `POST /v1/chat/completions`: validate input, forward the latest user message
  (with the optional `user` field as conversation id) and format the output.

Input validation behavior:
- Missing `messages` -> HTTP 400.
- No user message in `messages` -> HTTP 400.

Error handling strategy:
- Explicit validation failures return structured HTTP 400 JSON responses.
- A misconfigured term set raises `ConfigurationError` the first time the
  chat app is built, which fails the request with FastAPI's default 500
  handling and is logged.
- Streaming cancels/disconnects are handled inside the SSE generator.

Response formatting:
- Non-stream mode returns an OpenAI-compatible completion envelope.
- Stream mode returns SSE `chat.completion.chunk` frames ending with `[DONE]`.
  Flagged requests stream a single refusal chunk.
"""

import asyncio
import json
import logging
import threading
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from wordguard.config import DEBUG, MODEL_NAME
from wordguard.core.engine import ChatApp, build_default_app


logger = logging.getLogger(__name__)

app = FastAPI(title="wordguard")

_CHAT_APP: ChatApp | None = None


_CHAT_APP_LOCK = threading.Lock()


def set_chat_app(chat_app: ChatApp | None) -> None:
    """Override or clear the chat app served by this module."""
    global _CHAT_APP
    with _CHAT_APP_LOCK:
        _CHAT_APP = chat_app


def get_chat_app() -> ChatApp:
    """Lazily build and cache the default chat app from configuration.

    Sync handlers run on the threadpool, so the first build is serialized:
    every caller gets the same app and the same memory store.
    """
    global _CHAT_APP
    if _CHAT_APP is not None:
        return _CHAT_APP
    with _CHAT_APP_LOCK:
        if _CHAT_APP is None:
            _CHAT_APP = build_default_app()
        return _CHAT_APP


# ============================================================
# Request Schema
# ============================================================

class MessageIn(BaseModel):
    role: str
    content: str | None = None


class ChatCompletionRequest(BaseModel):
    """Subset of the OpenAI chat-completions payload that is honored."""

    messages: list[MessageIn] = []
    model: str | None = None
    stream: bool = False
    user: str | None = None


def _latest_user_message(messages: list[MessageIn]) -> str | None:
    for message in reversed(messages):
        if message.role == "user":
            return message.content or ""
    return None


def _completion_envelope(completion_id, model_name, content, finish_reason="stop"):
    return {
        "id": completion_id,
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model_name,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": finish_reason,
            }
        ],
    }


def _chunk_frame(completion_id, created, model_name, delta, finish_reason=None):
    data = {
        "id": completion_id,
        "object": "chat.completion.chunk",
        "created": created,
        "model": model_name,
        "choices": [
            {
                "index": 0,
                "delta": delta,
                "finish_reason": finish_reason,
            }
        ],
    }
    return f"data: {json.dumps(data)}\n\n"


# ============================================================
# Health / Models
# ============================================================

@app.get("/health")
def health():
    return {"status": "ok", "forbidden_terms": get_chat_app().forbidden_term_count()}


@app.get("/v1/models")
def list_models():
    return {
        "object": "list",
        "data": [
            {
                "id": MODEL_NAME,
                "object": "model",
                "created": int(time.time()),
                "owned_by": "local",
            }
        ],
    }


# ============================================================
# OpenAI-Compatible Chat Completions
# ============================================================

@app.post("/v1/chat/completions")
async def chat_completions(body: ChatCompletionRequest, request: Request):
    """OpenAI-compatible chat completions endpoint.

    Only the latest user message is forwarded; history comes from the
    server-side chat memory keyed by the `user` field.
    """
    if not body.messages:
        return JSONResponse(status_code=400, content={"error": "No messages provided"})

    user_message = _latest_user_message(body.messages)
    if user_message is None:
        return JSONResponse(status_code=400, content={"error": "No user message provided"})

    model_name = body.model or MODEL_NAME
    chat_app = get_chat_app()
    chat_request = chat_app.build_request(user_message, chat_id=body.user, model=body.model)

    if DEBUG:
        logger.debug("Request %s: stream=%s model=%s", chat_request.request_id, body.stream, model_name)

    if not body.stream:
        response = await chat_app.chat(chat_request)
        completion_id = response.metadata.get("id") or f"chatcmpl-{uuid.uuid4().hex}"
        return _completion_envelope(
            completion_id,
            model_name,
            response.content,
            response.finish_reason or "stop",
        )

    async def event_generator():
        """Yield SSE frames matching OpenAI chunk semantics.

        Error handling:
            Client cancellation or broken connections stop the stream quietly;
            the engine stream is closed in `finally`.
        """
        completion_id = f"chatcmpl-{uuid.uuid4().hex}"
        created = int(time.time())
        stream = chat_app.chat_stream(chat_request)

        try:
            async for chunk in stream:
                if await request.is_disconnected():
                    logger.info("Client disconnected during stream %s", chat_request.request_id)
                    return

                if chunk.content:
                    yield _chunk_frame(completion_id, created, model_name, {"content": chunk.content})

            yield _chunk_frame(completion_id, created, model_name, {}, "stop")
            yield "data: [DONE]\n\n"

        except (asyncio.CancelledError, BrokenPipeError, ConnectionResetError):
            logger.info("Stream %s cancelled by client", chat_request.request_id)
            return
        finally:
            await stream.aclose()

    return StreamingResponse(event_generator(), media_type="text/event-stream")
