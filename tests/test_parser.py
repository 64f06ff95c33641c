import json
import os

import pytest

from retrospective.parser import (
    Conversation,
    ConversationMessage,
    discover_projects,
    parse_conversation,
)


def _write_jsonl(path, entries):
    lines = [e if isinstance(e, str) else json.dumps(e) for e in entries]
    path.write_text("\n".join(lines), encoding="utf-8")


def test_parse_conversation_collects_text(tmp_path):
    log = tmp_path / "session.jsonl"
    _write_jsonl(
        log,
        [
            {"type": "user", "message": {"content": "hello"}},
            "{not json",
            {"type": "summary", "message": {"content": "ignored"}},
            {
                "type": "assistant",
                "message": {
                    "content": [
                        {"type": "text", "text": "first"},
                        {"type": "tool_use", "name": "Bash"},
                        {"type": "text", "text": "second"},
                    ]
                },
            },
            {"type": "user", "message": {"content": ""}},
            {"type": "user"},
            {"type": "user", "message": {"content": 42}},
            "",
        ],
    )

    conv = parse_conversation(log)

    assert conv == Conversation(
        messages=[
            ConversationMessage(role="user", text="hello"),
            ConversationMessage(role="assistant", text="first\nsecond"),
        ]
    )


def test_parse_conversation_skips_entries_with_bad_shape(tmp_path):
    log = tmp_path / "s.jsonl"
    _write_jsonl(
        log,
        [
            {"message": {"content": "no type"}},
            {"type": "user", "message": "not an object"},
            [1, 2, 3],
            {"type": "assistant", "message": {"content": "kept"}},
        ],
    )

    conv = parse_conversation(log)

    assert [m.text for m in conv.messages] == ["kept"]


def test_parse_conversation_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_conversation(tmp_path / "missing.jsonl")


def test_discover_projects_orders_by_size_and_mtime(tmp_path):
    big = tmp_path / "big"
    small = tmp_path / "small"
    empty = tmp_path / "empty"
    for d in (big, small, empty):
        d.mkdir()
    (tmp_path / "stray.jsonl").write_text("")

    newer = big / "b.jsonl"
    older = big / "a.jsonl"
    newer.write_text("")
    older.write_text("")
    os.utime(older, (1_000, 1_000))
    os.utime(newer, (2_000, 2_000))
    (big / "notes.txt").write_text("")

    (small / "x.jsonl").write_text("")
    (empty / "readme.md").write_text("")

    projects = discover_projects(tmp_path)

    assert [name for name, _ in projects] == ["big", "small"]
    assert projects[0][1] == [older, newer]
    assert projects[1][1] == [small / "x.jsonl"]


def test_discover_projects_missing_base(tmp_path):
    with pytest.raises(OSError):
        discover_projects(tmp_path / "nope")