"""Chat application wiring around the advisor chain.

Architectural role:
    Provides the entry point used by API/CLI layers to turn one user message
    into a model response that has passed through the interception stage.

Control-flow model:
    1. Build a `ChatRequest` with the system prompt and the user message; put
       the conversation id into the request context.
    2. Run the request through the `AdvisorChain`:
       `ViolationWordAdvisor` (-1000) -> `MemoryAdvisor` (-500) ->
       `LoggerAdvisor` (0) -> model stage.
    3. Return the final text (or stream its deltas).

Error handling strategy:
    - Configuration problems raise `ConfigurationError` from
      `build_default_app` and are fatal to startup.
    - Downstream transport failures arrive as sanitized strings from
      `wordguard.llm.client` and are returned like any other reply.

Side effects:
    Writes conversation messages to the in-process chat memory and emits logs.
"""

import logging
from typing import AsyncIterator

from wordguard.config import SYSTEM_MESSAGE, GuardSettings, load_settings
from wordguard.core.advisor import Advisor, AdvisorChain, ResponseProducer
from wordguard.core.logger_advisor import LoggerAdvisor
from wordguard.core.types import ChatMessage, ChatRequest, ChatResponse
from wordguard.core.violation_advisor import ViolationWordAdvisor
from wordguard.llm.service import LLMService
from wordguard.memory.chat_memory import CONVERSATION_ID_KEY, MemoryAdvisor, WindowChatMemory
from wordguard.safety.matcher import TermMatcher


logger = logging.getLogger(__name__)


class ChatApp:
    """Counseling chat client guarded by the forbidden-term stage."""

    def __init__(
        self,
        producer: ResponseProducer,
        advisors: list[Advisor],
        system_prompt: str = SYSTEM_MESSAGE,
        memory: WindowChatMemory | None = None,
        model: str | None = None,
    ):
        self.chain = AdvisorChain(advisors, producer, model=model)
        self.system_prompt = system_prompt
        self.memory = memory

    def forbidden_term_count(self) -> int:
        """Return the number of terms configured on the interception stage."""
        for advisor in self.chain.advisors:
            matcher = getattr(advisor, "matcher", None)
            if matcher is not None:
                return len(matcher)
        return 0

    def build_request(self, message: str, chat_id: str | None = None, model: str | None = None) -> ChatRequest:
        messages = []
        if self.system_prompt:
            messages.append(ChatMessage("system", self.system_prompt))
        messages.append(ChatMessage("user", message))

        context = {}
        if chat_id:
            context[CONVERSATION_ID_KEY] = chat_id

        return ChatRequest(messages=messages, context=context, model=model)

    async def chat(self, request: ChatRequest) -> ChatResponse:
        return await self.chain.call(request)

    def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        return self.chain.stream(request)

    async def do_chat(self, message: str, chat_id: str | None = None) -> str:
        """Answer one message and return the final assistant text."""
        response = await self.chat(self.build_request(message, chat_id))
        logger.debug("content: %s", response.content)
        return response.content

    async def do_chat_stream(self, message: str, chat_id: str | None = None) -> AsyncIterator[str]:
        """Answer one message, yielding non-empty text deltas."""
        async for chunk in self.chat_stream(self.build_request(message, chat_id)):
            if chunk.content:
                yield chunk.content


def build_advisors(settings: GuardSettings, memory: WindowChatMemory) -> list[Advisor]:
    """Create the default stage list from settings.

    Raises:
        ConfigurationError: The configured term set is malformed.
    """
    matcher = TermMatcher(settings.terms)
    logger.info("Forbidden term matcher ready: %d terms", len(matcher))

    return [
        ViolationWordAdvisor(
            matcher=matcher,
            refusal_message=settings.refusal_message,
            order=settings.violation_order,
            block_downstream=settings.block_downstream,
        ),
        MemoryAdvisor(memory),
        LoggerAdvisor(),
    ]


def build_default_app(settings: GuardSettings | None = None, producer: ResponseProducer | None = None) -> ChatApp:
    """Build a `ChatApp` from environment configuration."""
    settings = settings or load_settings()
    memory = WindowChatMemory(max_messages=settings.memory_max_messages)
    producer = producer or LLMService()

    return ChatApp(
        producer=producer,
        advisors=build_advisors(settings, memory),
        memory=memory,
        model=getattr(producer, "model", None),
    )
