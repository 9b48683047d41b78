"""wordguard: forbidden-term interception for chat pipelines.

Subpackages:
    - `safety`: Aho-Corasick term matcher.
    - `core`: request/response types, advisor chain, interception stage.
    - `memory`: windowed conversation memory.
    - `llm`: OpenAI-compatible downstream producer.
    - `api`: HTTP and CLI adapters.
"""
