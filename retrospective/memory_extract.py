"""Finding the memories recalled during a conversation and the text around them."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CHUNK_SIZE = 80_000
OVERLAP_SEGMENTS = 10
SEPARATOR = "\n\n"

_MEMORY_TOOL_PREFIX = "mcp__memory__"
_LABELS = {"user": "User", "assistant": "Assistant"}
_STORE_PREVIEW_CHARS = 80


@dataclass
class RecalledMemory:
    """A memory returned by one of the memory tools."""

    id: str
    content: str


@dataclass
class TextSegment:
    """A piece of conversation text and the memories it returned, if any."""

    text: str
    memory_ids: list[str] = field(default_factory=list)


@dataclass
class Chunk:
    """A window of conversation text with the memories it is responsible for."""

    text: str
    memory_ids: list[str]


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


@dataclass
class ConversationWithMemories:
    """A conversation's segments together with every memory recalled in it."""

    segments: list[TextSegment]
    memories: dict[str, RecalledMemory]

    def into_chunks(self) -> list[Chunk]:
        """Split into chunks of at most about ``CHUNK_SIZE`` bytes.

        Each chunk repeats up to ``OVERLAP_SEGMENTS`` preceding segments for
        context, but owns only the memories returned inside its own segments.
        Chunks that own no known memory are dropped.
        """
        total_len = sum(_byte_len(s.text) for s in self.segments)
        if total_len <= CHUNK_SIZE:
            text = SEPARATOR.join(s.text for s in self.segments)
            return [Chunk(text=text, memory_ids=list(self.memories))]

        chunks: list[Chunk] = []
        chunk_start = 0
        count = len(self.segments)

        while chunk_start < count:
            chunk_len = 0
            chunk_end = chunk_start
            while chunk_end < count:
                seg_len = _byte_len(self.segments[chunk_end].text) + len(SEPARATOR)
                if chunk_len + seg_len > CHUNK_SIZE and chunk_end > chunk_start:
                    break
                chunk_len += seg_len
                chunk_end += 1

            overlap_start = max(chunk_start - OVERLAP_SEGMENTS, 0)
            text = SEPARATOR.join(
                s.text for s in self.segments[overlap_start:chunk_end]
            )

            owned = dict.fromkeys(
                memory_id
                for segment in self.segments[chunk_start:chunk_end]
                for memory_id in segment.memory_ids
            )
            memory_ids = [memory_id for memory_id in owned if memory_id in self.memories]
            if memory_ids:
                chunks.append(Chunk(text=text, memory_ids=memory_ids))

            chunk_start = chunk_end

        return chunks


def _get(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, dict) else None


def _get_str(value: Any, key: str) -> str | None:
    found = _get(value, key)
    return found if isinstance(found, str) else None


def _get_u64(value: Any, key: str) -> int | None:
    found = _get(value, key)
    if isinstance(found, bool) or not isinstance(found, int):
        return None
    return found if 0 <= found < 2**64 else None


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _is_memory_tool(name: str) -> bool:
    return name.startswith(_MEMORY_TOOL_PREFIX)


def _summarize_tool_input(tool_name: str, tool_input: Any) -> str:
    if tool_name == "recall_memory":
        query = _get_str(tool_input, "query") or "?"
        n = _get_u64(tool_input, "n") or 0
        return f'query="{query}" n={n}' if n > 0 else f'query="{query}"'
    if tool_name in ("search_by_tags", "search_by_tag"):
        tag_list = _get(tool_input, "tags")
        if isinstance(tag_list, list):
            tags = ", ".join(t for t in tag_list if isinstance(t, str))
        else:
            tags = _get_str(tool_input, "tag") or ""
        return f"tags=[{tags}]"
    if tool_name == "session_start":
        task = _get_str(tool_input, "task") or "?"
        return f'task="{task}"'
    if tool_name == "store_memory":
        content = _get_str(tool_input, "content")
        if content is None:
            content = "?"
        truncated = content[:_STORE_PREVIEW_CHARS]
        if len(truncated) < len(content):
            return f'content="{truncated}..."'
        return f'content="{truncated}"'
    if tool_name in ("update_memory", "delete_memory"):
        memory_id = _get_str(tool_input, "id") or "?"
        return f"id={memory_id}"
    return _compact_json(tool_input)


def _tool_result_text(block: dict) -> str:
    content = block.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            item["text"]
            for item in content
            if _get_str(item, "type") == "text" and _get_str(item, "text") is not None
        )
    return ""


def _single_memory(value: Any) -> RecalledMemory | None:
    if not isinstance(value, dict):
        return None
    memory_obj = value["memory"] if "memory" in value else value
    memory_id = _get_str(memory_obj, "id")
    content = _get_str(memory_obj, "content")
    if not memory_id or not content:
        return None
    return RecalledMemory(id=memory_id, content=content)


def _collect_memories(value: Any, found: dict[str, RecalledMemory]) -> None:
    memory = _single_memory(value)
    if memory is not None:
        found[memory.id] = memory
        return
    if isinstance(value, list):
        for item in value:
            _collect_memories(item, found)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_memories(item, found)


def _memories_from_result(text: str) -> dict[str, RecalledMemory]:
    found: dict[str, RecalledMemory] = {}
    try:
        parsed = json.loads(text)
    except ValueError:
        return found
    _collect_memories(parsed, found)
    return found


def extract_memories_from_conversation(
    path: str | Path,
) -> ConversationWithMemories | None:
    """Read a ``.jsonl`` log and gather its text and recalled memories.

    Returns ``None`` if no memory tool returned any memory. Raises ``OSError``
    if the file cannot be read.
    """
    path = Path(path)
    content = path.read_text(encoding="utf-8")

    memory_tool_uses: dict[str, str] = {}
    segments: list[TextSegment] = []
    memories: dict[str, RecalledMemory] = {}

    for raw in content.split("\n"):
        line = raw.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except ValueError:
            continue
        if not isinstance(entry, dict) or "message" not in entry:
            continue

        role = _get_str(entry, "type") or ""
        label = _LABELS.get(role)
        message = entry["message"]
        if not isinstance(message, dict) or "content" not in message:
            continue
        body = message["content"]

        if isinstance(body, str):
            if label is not None:
                segments.append(TextSegment(text=f"{label}: {body}"))
            continue
        if not isinstance(body, list):
            continue

        for block in body:
            block_type = _get_str(block, "type") or ""
            if block_type == "text":
                text = _get_str(block, "text")
                if text is not None and label is not None:
                    segments.append(TextSegment(text=f"{label}: {text}"))
            elif block_type == "thinking":
                thinking = _get_str(block, "thinking")
                if thinking:
                    segments.append(TextSegment(text=f"[thinking]: {thinking}"))
            elif block_type == "tool_use":
                name = _get_str(block, "name") or ""
                if not _is_memory_tool(name):
                    continue
                tool_id = _get_str(block, "id") or ""
                short_name = name[len(_MEMORY_TOOL_PREFIX):]
                summary = _summarize_tool_input(short_name, block.get("input"))
                segments.append(TextSegment(text=f"[memory tool: {short_name}] {summary}"))
                if tool_id:
                    memory_tool_uses[tool_id] = short_name
            elif block_type == "tool_result":
                tool_use_id = _get_str(block, "tool_use_id") or ""
                tool_name = memory_tool_uses.get(tool_use_id)
                if tool_name is None:
                    continue
                found = _memories_from_result(_tool_result_text(block))
                if not found:
                    segments.append(TextSegment(text=f"[{tool_name} result]: (no memories)"))
                else:
                    listing = "\n".join(
                        f"  - [{m.id}] {m.content}" for m in found.values()
                    )
                    segments.append(
                        TextSegment(
                            text=f"[{tool_name} result]: {len(found)} memories returned\n{listing}",
                            memory_ids=list(found),
                        )
                    )
                memories.update(found)

    if not memories:
        return None
    return ConversationWithMemories(segments=segments, memories=memories)