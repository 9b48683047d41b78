"""Runtime configuration for the interception layer and its collaborators.

Architectural role:
    Centralizes forbidden-term loading, refusal text, stage ordering, model
    endpoint selection and credential lookup for `wordguard.core`,
    `wordguard.llm` and the API adapters.

Resolution model:
    - `.env` is loaded once at import time via `load_dotenv()`.
    - Module-level constants mirror the process environment at import time and
      are used as defaults.
    - `load_settings()` re-reads the environment and returns a `GuardSettings`
      snapshot, so callers (and tests) can rebuild configuration after the
      environment changes.

Term sources:
    1. `FORBIDDEN_TERMS_FILE`: UTF-8 file, one term per line. Blank lines and
       lines starting with `#` are ignored.
    2. `FORBIDDEN_TERMS`: comma-separated list.
    File terms come first; order is preserved and duplicates are kept (the
    matcher reports the first configured spelling).

Failure behavior:
    - A configured but unreadable terms file raises `ConfigurationError`.
    - Missing key material is represented as `None` and handled by
      `wordguard.llm.client`.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from wordguard.errors import ConfigurationError

load_dotenv()


DEFAULT_REFUSAL_MESSAGE = (
    "Sorry, your message contains disallowed content. "
    "Please revise it and try again."
)

DEFAULT_SYSTEM_MESSAGE = (
    "You are a supportive counseling assistant. You are not a doctor or a "
    "therapist and you never diagnose or prescribe. Listen first, reflect the "
    "key points back, ask open questions, and keep answers short and warm. "
    "If the user mentions self-harm, recommend contacting a local crisis line "
    "or a professional immediately."
)

# Lower order runs earlier; the violation stage sits in front of every other
# built-in stage.
VIOLATION_ADVISOR_ORDER = -1000
MEMORY_ADVISOR_ORDER = -500
LOGGER_ADVISOR_ORDER = 0

CHAT_MEMORY_MAX_MESSAGES = 10

LLM_URL = os.getenv("LLM_URL", "http://127.0.0.1:8080/v1/chat/completions")
MODEL_NAME = os.getenv("MODEL_NAME", "qwen2.5:3b")
LLM_KEY_FILE = os.getenv("LLM_KEY_FILE")

SYSTEM_MESSAGE = os.getenv("SYSTEM_MESSAGE", DEFAULT_SYSTEM_MESSAGE)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Sensitive request/response debug logging is opt-in.
DEBUG = os.getenv("DEBUG") == "true"


@dataclass(frozen=True)
class GuardSettings:
    """Snapshot of interception settings resolved from the environment.

    Attributes:
        terms: Ordered forbidden terms (file terms first, then env terms).
        refusal_message: Text returned verbatim when a request is flagged.
        block_downstream: Skip the downstream call for flagged requests.
        violation_order: Priority of the interception stage.
        memory_max_messages: Per-conversation window of the chat memory.
    """

    terms: tuple = field(default_factory=tuple)
    refusal_message: str = DEFAULT_REFUSAL_MESSAGE
    block_downstream: bool = False
    violation_order: int = VIOLATION_ADVISOR_ORDER
    memory_max_messages: int = CHAT_MEMORY_MAX_MESSAGES


def _env_flag(name, default=False):
    """Parse a boolean environment flag (`1`, `true`, `yes`, `on`)."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_terms(raw):
    """Split a comma-separated term list, dropping surrounding whitespace.

    Empty items (for example from a trailing comma) are skipped rather than
    treated as malformed terms.
    """
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def load_terms_file(path):
    """Read forbidden terms from a UTF-8 file, one per line.

    Args:
        path: Terms file path.

    Returns:
        List of terms in file order.

    Raises:
        ConfigurationError: The file cannot be read.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except OSError as err:
        raise ConfigurationError(f"Cannot read forbidden terms file: {path}") from err

    terms = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        terms.append(line)
    return terms


def load_terms():
    """Resolve the configured Term Set from file and environment sources."""
    terms = []

    terms_file = os.getenv("FORBIDDEN_TERMS_FILE")
    if terms_file:
        terms.extend(load_terms_file(terms_file))

    terms.extend(parse_terms(os.getenv("FORBIDDEN_TERMS", "")))
    return terms


def load_settings():
    """Build a `GuardSettings` snapshot from the current environment.

    Raises:
        ConfigurationError: Terms file unreadable or numeric values malformed.
    """
    try:
        violation_order = int(os.getenv("VIOLATION_ADVISOR_ORDER", "-1000"))
        memory_max_messages = int(os.getenv("CHAT_MEMORY_MAX_MESSAGES", "10"))
    except ValueError as err:
        raise ConfigurationError(f"Invalid numeric setting: {err}") from err

    return GuardSettings(
        terms=tuple(load_terms()),
        refusal_message=os.getenv("REFUSAL_MESSAGE") or DEFAULT_REFUSAL_MESSAGE,
        block_downstream=_env_flag("VIOLATION_BLOCK_DOWNSTREAM"),
        violation_order=violation_order,
        memory_max_messages=memory_max_messages,
    )


def load_key(path):
    """Load the model API key from environment override or key file.

    Resolution order:
        1. `LLM_API_KEY` environment variable.
        2. Raw file contents at `path`.

    Edge cases:
        - `None` path and no env override returns `None`.
        - Missing file returns `None`.
    """
    env_value = os.getenv("LLM_API_KEY")
    if env_value:
        return env_value
    if not path:
        return None
    if not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return f.read().strip()


def configure_logging(level=None):
    """Configure root logging for entrypoints (CLI and HTTP server)."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
