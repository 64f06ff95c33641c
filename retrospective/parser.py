"""Discovery and parsing of conversation log files."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_ROLES = frozenset({"user", "assistant"})


@dataclass
class ConversationMessage:
    """A single user or assistant message with its plain text."""

    role: str
    text: str


@dataclass
class Conversation:
    """The ordered text messages of one conversation."""

    messages: list[ConversationMessage] = field(default_factory=list)


def _mtime_key(path: Path) -> tuple:
    try:
        return (1, path.stat().st_mtime_ns)
    except OSError:
        return (0,)


def _conversation_files(directory: Path) -> list[Path]:
    try:
        children = list(directory.iterdir())
    except OSError:
        return []
    files = [p for p in children if p.suffix == ".jsonl" and p.is_file()]
    return sorted(files, key=_mtime_key)


def discover_projects(base: str | Path) -> list[tuple[str, list[Path]]]:
    """Find project directories under ``base`` and their ``.jsonl`` logs.

    Logs within a project are ordered oldest first; projects are ordered by
    number of logs, largest first. Raises ``OSError`` if ``base`` cannot be read.
    """
    base = Path(base)
    projects: dict[str, list[Path]] = {}
    for entry in base.iterdir():
        if not entry.is_dir():
            continue
        conversations = _conversation_files(entry)
        if conversations:
            projects[entry.name] = conversations

    ordered = sorted(projects.items())
    ordered.sort(key=lambda item: len(item[1]), reverse=True)
    return ordered


def _split_lines(content: str) -> list[str]:
    return re.split(r"\n", content)


def _extract_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            item["text"]
            for item in content
            if isinstance(item, dict)
            and item.get("type") == "text"
            and isinstance(item.get("text"), str)
        ]
        return "\n".join(parts)
    return ""


def _parse_entry(line: str) -> tuple[str, Any]:
    """Return ``(type, content)`` for a log line, raising ``ValueError`` if malformed."""
    entry = json.loads(line)
    if not isinstance(entry, dict):
        raise ValueError("log entry is not an object")
    entry_type = entry.get("type")
    if not isinstance(entry_type, str):
        raise ValueError("log entry has no string 'type'")
    message = entry.get("message")
    if message is None:
        return entry_type, None
    if not isinstance(message, dict):
        raise ValueError("log entry 'message' is not an object")
    return entry_type, message.get("content")


def parse_conversation(path: str | Path) -> Conversation:
    """Read a ``.jsonl`` log and collect its non-empty user and assistant texts."""
    path = Path(path)
    content = path.read_text(encoding="utf-8")

    messages: list[ConversationMessage] = []
    for number, raw in enumerate(_split_lines(content), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            entry_type, body = _parse_entry(line)
        except ValueError as exc:
            logger.warning("skipping malformed jsonl line %s:%d: %s", path, number, exc)
            continue
        if entry_type not in _ROLES:
            continue
        text = _extract_text(body)
        if text:
            messages.append(ConversationMessage(role=entry_type, text=text))

    return Conversation(messages=messages)