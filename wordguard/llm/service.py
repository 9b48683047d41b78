"""Request-to-payload adapter for LLM invocation.

Architectural role:
    Implements the `ResponseProducer` boundary used by the advisor chain's
    terminal stage. Bridges `ChatRequest` values to the transport in
    `wordguard.llm.client`.

Model call flow:
    request -> payload construction -> `LLMClient.complete` / `LLMClient.stream`.

Token behavior:
    No explicit token-budget enforcement is implemented here.
"""

from wordguard.config import MODEL_NAME
from wordguard.core.types import ChatRequest
from wordguard.llm.client import LLMClient


class LLMService:
    """`ResponseProducer` backed by an OpenAI-compatible endpoint.

    Parameter semantics:
        - `temperature=0.45`: moderate randomness.
        - `top_p=0.9`: nucleus sampling cap.
        - `presence_penalty=0.4`: encourages topic spread.
        - `frequency_penalty=0.5`: discourages repetition.
    """

    def __init__(self, client: LLMClient | None = None, model: str = MODEL_NAME):
        self.client = client or LLMClient()
        self.model = model

    def build_payload(self, request: ChatRequest) -> dict:
        return {
            "model": request.model or self.model,
            "messages": [
                {"role": message.role, "content": message.content}
                for message in request.messages
            ],
            "temperature": 0.45,
            "top_p": 0.9,
            "presence_penalty": 0.4,
            "frequency_penalty": 0.5,
        }

    def call(self, request: ChatRequest) -> str:
        return self.client.complete(self.build_payload(request))

    def stream(self, request: ChatRequest):
        return self.client.stream(self.build_payload(request))
