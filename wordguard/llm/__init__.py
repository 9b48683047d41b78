"""LLM access package.

Module split:
    - `client`: HTTP transport and response parsing (`requests`).
    - `service`: `ResponseProducer` turning chat requests into payloads.
"""
