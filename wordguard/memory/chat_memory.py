"""Windowed per-conversation chat memory and the advisor that feeds it.

Short-term memory model:
    - Messages are kept in process memory, grouped by conversation id.
    - Only the most recent `max_messages` messages of each conversation are
      retained; older ones are dropped on write.
    - Nothing is persisted to disk.

Advisor behavior (`MemoryAdvisor`):
    - PRE: prepend the stored history to the request (after any system
      message) and store the current user message.
    - POST: store the assistant reply.
    - Requests whose context has no `conversation_id` bypass memory entirely.
    - Exchanges flagged by the interception stage are not stored.

Concurrency:
    One `threading.Lock` guards the store. POST may run on a different thread
    than PRE; the conversation id travels in the request context.
"""

import logging
import threading
from collections import deque

from wordguard.config import CHAT_MEMORY_MAX_MESSAGES, MEMORY_ADVISOR_ORDER
from wordguard.core.advisor import BaseAdvisor
from wordguard.core.types import VIOLATION_FLAG_KEY, ChatMessage, ChatRequest, ChatResponse


logger = logging.getLogger(__name__)

CONVERSATION_ID_KEY = "conversation_id"


class WindowChatMemory:
    """Thread-safe store keeping the last N messages per conversation."""

    def __init__(self, max_messages: int = CHAT_MEMORY_MAX_MESSAGES):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.max_messages = max_messages
        self._conversations: dict[str, deque] = {}
        self._lock = threading.Lock()

    def add(self, conversation_id: str, messages: list[ChatMessage]) -> None:
        with self._lock:
            window = self._conversations.get(conversation_id)
            if window is None:
                window = deque(maxlen=self.max_messages)
                self._conversations[conversation_id] = window
            window.extend(messages)

    def get(self, conversation_id: str) -> list[ChatMessage]:
        with self._lock:
            return list(self._conversations.get(conversation_id, ()))

    def clear(self, conversation_id: str) -> None:
        with self._lock:
            self._conversations.pop(conversation_id, None)

    def conversation_ids(self) -> list[str]:
        with self._lock:
            return list(self._conversations)


class MemoryAdvisor(BaseAdvisor):
    """Inject conversation history into requests and record replies."""

    def __init__(self, memory: WindowChatMemory, order: int = MEMORY_ADVISOR_ORDER):
        self.memory = memory
        self.order = order

    def before(self, request: ChatRequest, chain) -> ChatRequest:
        conversation_id = request.context.get(CONVERSATION_ID_KEY)
        if not conversation_id:
            return request

        history = self.memory.get(conversation_id)

        system = [m for m in request.messages if m.role == "system"]
        rest = [m for m in request.messages if m.role != "system"]

        user_text = request.user_text()
        if user_text and not request.context.get(VIOLATION_FLAG_KEY):
            self.memory.add(conversation_id, [ChatMessage("user", user_text)])

        return request.with_messages(system + history + rest)

    def after(self, response: ChatResponse, chain) -> ChatResponse:
        conversation_id = response.context.get(CONVERSATION_ID_KEY)
        if not conversation_id:
            return response

        if response.context.get(VIOLATION_FLAG_KEY):
            logger.debug("Flagged exchange for conversation %s not stored", conversation_id)
        elif response.content:
            self.memory.add(conversation_id, [ChatMessage("assistant", response.content)])
        else:
            logger.debug("Empty reply for conversation %s not stored", conversation_id)
        return response
