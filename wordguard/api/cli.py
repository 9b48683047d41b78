"""
Interactive CLI adapter for the guarded chat engine.

Architectural role:
- Provides a terminal-only interface over `wordguard.core.engine.ChatApp`.
- Displays the configured guard status at startup.

Request lifecycle (per user turn, CLI):
1. Read a single line from stdin.
2. Handle local control commands (`exit`/`quit`, `empty chat`/`clear chat`).
3. Forward regular prompts to `ChatApp.do_chat_stream` with the session's
   conversation id.
4. Print streamed deltas as they arrive.

Error handling strategy:
- A `ConfigurationError` at startup prints the problem and exits with code 1.
- EOF and keyboard interrupts terminate the loop without traceback output.
"""

import asyncio
import sys
import uuid

from wordguard.config import configure_logging
from wordguard.core.engine import build_default_app
from wordguard.errors import ConfigurationError


# =========================================================
# UTF-8 SAFE STDOUT
# =========================================================

if hasattr(sys.stdout, "reconfigure"):
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="ignore")
    except (AttributeError, OSError, ValueError):
        pass


async def _print_stream(chat_app, question, chat_id):
    async for delta in chat_app.do_chat_stream(question, chat_id):
        print(delta, end="", flush=True)
    print()


def main():
    """Run the interactive terminal session and return the exit code."""
    configure_logging("WARNING")

    try:
        chat_app = build_default_app()
    except ConfigurationError as err:
        print(f"Configuration error: {err}", file=sys.stderr)
        return 1

    chat_id = uuid.uuid4().hex

    print("wordguard chat started. (Type 'exit' to quit)\n")
    print(f"Forbidden terms loaded: {chat_app.forbidden_term_count()}")
    print(f"Conversation: {chat_id}")
    print("-" * 60)

    while True:

        try:
            question = input("Question: ").strip()

        except EOFError:
            print("\nSession closed.")
            break

        except KeyboardInterrupt:
            print("\nInterrupted.")
            break

        if not question:
            continue

        if question.lower() in ("exit", "quit"):
            print("Shutting down.")
            break

        if question.lower() in ("empty chat", "clear chat"):
            if chat_app.memory is not None:
                chat_app.memory.clear(chat_id)
            chat_id = uuid.uuid4().hex
            print("Chat cleared.")
            continue

        print("\nResponse:\n")
        asyncio.run(_print_stream(chat_app, question, chat_id))
        print("\n" + "-" * 60 + "\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
