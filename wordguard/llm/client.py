"""OpenAI-compatible transport client for chat completions.

Architectural role:
    Executes HTTP requests against the configured chat-completions endpoint and
    normalizes streaming and non-streaming response materialization.

Model invocation flow:
    `service.LLMService` -> `LLMClient.complete(payload)` or
    `LLMClient.stream(payload)` -> parsed text or streamed deltas.

Retry behavior:
    No retry loop is implemented. Each HTTP call is attempted once with
    timeout=120s.

Failure handling model:
    Exceptions are converted into sanitized error strings (or streamed error
    chunks) to keep caller-side control flow stable. Raw provider responses
    are never surfaced.
"""

import json
import logging

import requests

from wordguard.config import LLM_KEY_FILE, LLM_URL, load_key


logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 120


def _build_sanitized_http_error(err: requests.exceptions.RequestException) -> str:
    """Build HTTP error text with the status code only, when known."""
    status_code = None
    if getattr(err, "response", None) is not None:
        status_code = getattr(err.response, "status_code", None)

    if status_code:
        return f"\nLLM HTTP ERROR ({status_code})\n"
    return "\nLLM HTTP ERROR\n"


def _extract_delta(data: dict) -> str | None:
    """Pull the text delta out of one decoded stream event."""
    if "choices" in data and data["choices"]:
        choice = data["choices"][0]

        if "delta" in choice and "content" in choice["delta"]:
            return choice["delta"]["content"]

        if "message" in choice and "content" in choice["message"]:
            return choice["message"]["content"]

        if "text" in choice:
            return choice["text"]

    elif "message" in data and "content" in data["message"]:
        return data["message"]["content"]

    return None


class LLMClient:
    """Thin `requests` wrapper around one chat-completions endpoint."""

    def __init__(self, url: str = LLM_URL, key_file: str | None = LLM_KEY_FILE, session=None):
        self.url = url
        self.key_file = key_file
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        api_key = load_key(self.key_file)
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def complete(self, payload: dict) -> str:
        """Send a non-streaming request and return the assistant text.

        Returns:
            Stripped assistant content, or a sanitized error string.
        """
        try:
            response = self.session.post(
                self.url,
                headers=self._headers(),
                json={**payload, "stream": False},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            data = response.json()
            return data["choices"][0]["message"]["content"].strip()

        except requests.exceptions.RequestException as err:
            logger.warning("LLM request failed: %s", type(err).__name__)
            return _build_sanitized_http_error(err)

        except (KeyError, IndexError, TypeError, ValueError):
            logger.exception("LLM response could not be parsed")
            return "\nLLM REQUEST FAILED\n"

    def stream(self, payload: dict):
        """Yield assistant text deltas from an SSE-style stream.

        Behavior:
            - Parses line-delimited JSON chunks, with or without `data: `.
            - Stops at `[DONE]`.
            - Undecodable lines are skipped.

        Error handling:
            Request exceptions are converted to one sanitized error chunk.
        """
        try:
            with self.session.post(
                self.url,
                headers=self._headers(),
                json={**payload, "stream": True},
                stream=True,
                timeout=REQUEST_TIMEOUT,
            ) as response:

                response.raise_for_status()
                response.encoding = "utf-8"

                for line in response.iter_lines(decode_unicode=True):

                    if not line:
                        continue

                    if line.startswith("data: "):
                        line = line[6:]

                    if line.strip() == "[DONE]":
                        break

                    try:
                        data = json.loads(line)
                    except ValueError:
                        continue

                    delta = _extract_delta(data)
                    if delta:
                        yield delta

        except requests.exceptions.RequestException as err:
            logger.warning("LLM stream failed: %s", type(err).__name__)
            yield _build_sanitized_http_error(err)
