"""Condensing a conversation into a bounded prompt text."""

from __future__ import annotations

from .parser import Conversation

MAX_CONDENSED_CHARS = 30_000
TRUNCATION_MARKER = "\n\n[...truncated...]\n\n"

_LABELS = {"user": "User", "assistant": "Assistant"}


def _boundary_at_or_after(data: bytes, index: int) -> int:
    """Return the first UTF-8 character boundary at or after ``index``."""
    while index < len(data) and (data[index] & 0xC0) == 0x80:
        index += 1
    return index


def condense(conv: Conversation) -> str:
    """Format the conversation, keeping its head and tail if it is too long.

    Lengths are measured in UTF-8 bytes; cuts never split a character.
    """
    formatted = "".join(
        f"{_LABELS.get(m.role, m.role)}: {m.text}\n\n" for m in conv.messages
    )
    data = formatted.encode("utf-8")
    if len(data) <= MAX_CONDENSED_CHARS:
        return formatted

    head_budget = MAX_CONDENSED_CHARS * 60 // 100
    tail_budget = MAX_CONDENSED_CHARS * 40 // 100

    head_end = _boundary_at_or_after(data, head_budget)
    tail_start = _boundary_at_or_after(data, max(len(data) - tail_budget, 0))

    head = data[:head_end].decode("utf-8")
    tail = data[tail_start:].decode("utf-8")
    return f"{head}{TRUNCATION_MARKER}{tail}"