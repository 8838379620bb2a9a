"""Tiny terminal UI helpers (prompt_toolkit-based).

Kept apart from the insight and store code so the prompts can be driven in
tests with a pipe input and ``DummyOutput``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.validation import ValidationError, Validator

from .categories import validate_category_name
from .logging_setup import get_logger

EXIT_WORDS = frozenset({"exit", "quit", ":q"})

type ChatTurn = dict[str, str]
type ReplyFn = Callable[[str, Sequence[ChatTurn]], str]

_logger = get_logger("cashflow.term_ui")


def _session_like(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


def prompt_category(
    categories: Sequence[str],
    *,
    default: str = "General",
    session: PromptSession | None = None,
    message: str = "Category (Tab to complete, Enter to accept): ",
) -> str | None:
    """Ask for a category name with completion over ``categories``.

    A typed name that matches an existing category ignoring case is returned
    in its stored casing. Returns ``None`` when canceled with Esc or Ctrl+C.
    """

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    class _V(Validator):
        def validate(self, document) -> None:
            try:
                validate_category_name(document.text)
            except ValueError as e:
                raise ValidationError(message=str(e)) from e

    sess = _session_like(session, kb)
    result = sess.prompt(
        message,
        default=default,
        completer=WordCompleter(list(categories), ignore_case=True, sentence=True),
        complete_while_typing=False,
        validator=_V(),
        validate_while_typing=False,
        key_bindings=kb,
    )
    if result is None:
        return None
    name = validate_category_name(result)
    by_lower = {c.casefold(): c for c in categories}
    return by_lower.get(name.casefold(), name)


def run_chat_loop(
    reply: ReplyFn,
    *,
    session: PromptSession | None = None,
    write: Callable[[str], Any] = print,
    message: str = "You: ",
) -> list[ChatTurn]:
    """Read messages until EOF or an exit word, answering each with ``reply``.

    ``reply`` receives the message and the transcript so far (oldest first)
    and returns the assistant's text. A ``RuntimeError`` from ``reply`` is
    shown and the loop continues; the failed turn is not recorded. Returns the
    full transcript.
    """

    kb = KeyBindings()
    sess = _session_like(session, kb)
    history: list[ChatTurn] = []
    while True:
        try:
            text = sess.prompt(message, key_bindings=kb)
        except (EOFError, KeyboardInterrupt):
            break
        msg = (text or "").strip()
        if not msg:
            continue
        if msg.lower() in EXIT_WORDS:
            break
        try:
            answer = reply(msg, tuple(history))
        except RuntimeError as e:
            _logger.warning("term_ui:chat_reply_failed error=%s", e.__class__.__name__)
            write(f"Error: {e}")
            continue
        history.append({"role": "user", "content": msg})
        history.append({"role": "assistant", "content": answer})
        write(answer)
    return history


__all__ = ["EXIT_WORDS", "prompt_category", "run_chat_loop"]
