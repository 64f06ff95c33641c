"""Persistent record of which conversations have been processed."""

from __future__ import annotations

import enum
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class Status(str, enum.Enum):
    """Where a conversation is in the pipeline."""

    HEURISTIC_SKIPPED = "heuristic_skipped"
    NOT_INTERESTING = "not_interesting"
    INTERESTING = "interesting"
    EXTRACTED = "extracted"
    APPROVED = "approved"
    STORED = "stored"
    FAILED = "failed"


def _field(data: dict, key: str, kind: type) -> Any:
    value = data[key]
    if not isinstance(value, kind):
        raise TypeError(f"field {key!r} must be {kind.__name__}")
    return value


def _object(value: Any) -> dict:
    if not isinstance(value, dict):
        raise TypeError("expected a JSON object")
    return value


@dataclass
class Learning:
    """A lesson extracted from a conversation."""

    content: str
    tags: list[str]
    category: str
    approved: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> Learning:
        data = _object(data)
        tags = _field(data, "tags", list)
        if not all(isinstance(t, str) for t in tags):
            raise TypeError("field 'tags' must hold strings")
        approved = data.get("approved", False)
        if not isinstance(approved, bool):
            raise TypeError("field 'approved' must be bool")
        return cls(
            content=_field(data, "content", str),
            tags=list(tags),
            category=_field(data, "category", str),
            approved=approved,
        )

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "tags": list(self.tags),
            "category": self.category,
            "approved": self.approved,
        }


@dataclass
class ConversationState:
    """The outcome recorded for one conversation."""

    project: str
    session_id: str
    status: Status
    filter_reason: str | None = None
    learnings: list[Learning] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ConversationState:
        data = _object(data)
        reason = data.get("filter_reason")
        if reason is not None and not isinstance(reason, str):
            raise TypeError("field 'filter_reason' must be str")
        learnings = data.get("learnings", [])
        if not isinstance(learnings, list):
            raise TypeError("field 'learnings' must be a list")
        return cls(
            project=_field(data, "project", str),
            session_id=_field(data, "session_id", str),
            status=Status(_field(data, "status", str)),
            filter_reason=reason,
            learnings=[Learning.from_dict(item) for item in learnings],
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "project": self.project,
            "session_id": self.session_id,
            "status": self.status.value,
        }
        if self.filter_reason is not None:
            result["filter_reason"] = self.filter_reason
        if self.learnings:
            result["learnings"] = [item.to_dict() for item in self.learnings]
        return result


@dataclass
class State:
    """All recorded conversations, keyed by session id."""

    conversations: dict[str, ConversationState] = field(default_factory=dict)

    @classmethod
    def load(cls, path: str | Path) -> State:
        """Load state from ``path``; a missing file gives an empty state.

        Raises ``ValueError`` if the file is not valid state JSON.
        """
        path = Path(path)
        if not path.exists():
            return cls()
        text = path.read_text(encoding="utf-8")
        try:
            data = _object(json.loads(text))
            conversations = _field(data, "conversations", dict)
            return cls(
                conversations={
                    key: ConversationState.from_dict(value)
                    for key, value in conversations.items()
                }
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise ValueError(f"parsing state file: {path}") from exc

    def to_dict(self) -> dict:
        return {
            "conversations": {
                key: value.to_dict() for key, value in self.conversations.items()
            }
        }

    def save(self, path: str | Path) -> None:
        """Write state atomically via a temporary file beside ``path``."""
        path = Path(path)
        tmp_path = path.with_suffix(".tmp")
        content = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, path)

    def is_processed(self, session_id: str) -> bool:
        return session_id in self.conversations