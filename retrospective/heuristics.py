"""Cheap checks that rule out conversations not worth analysing."""

from __future__ import annotations

from .parser import Conversation

MIN_TOTAL_TEXT = 500


def heuristic_filter(conv: Conversation) -> str | None:
    """Return the reason to skip ``conv``, or ``None`` if it passes."""
    user_count = sum(1 for m in conv.messages if m.role == "user")
    assistant_count = sum(1 for m in conv.messages if m.role == "assistant")

    if user_count <= 1 and assistant_count <= 1:
        return "too few messages (<=1 user AND <=1 assistant)"

    total_len = sum(len(m.text.encode("utf-8")) for m in conv.messages)
    if total_len < MIN_TOTAL_TEXT:
        return f"total text too short ({total_len} chars < {MIN_TOTAL_TEXT})"

    return None