"""Memory subsystem package.

Groups the short-term conversation memory used by the chat pipeline:
    - `chat_memory`: windowed in-process store plus `MemoryAdvisor`.
"""
