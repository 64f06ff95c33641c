import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
import responses

from retrospective.cli import main
from retrospective.state import ConversationState, Learning, State, Status

MEMORY_URL = "http://memory.example.com"


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    projects = tmp_path / "home" / ".claude" / "projects"
    projects.mkdir(parents=True)
    return projects


@pytest.fixture
def mocked():
    with responses.RequestsMock() as rsps:
        yield rsps


def _write_log(project_dir: Path, session_id: str, entries: list[dict]) -> Path:
    project_dir.mkdir(parents=True, exist_ok=True)
    path = project_dir / f"{session_id}.jsonl"
    path.write_text("\n".join(json.dumps(e) for e in entries), encoding="utf-8")
    return path


def _long_conversation() -> list[dict]:
    return [
        {"type": role, "message": {"content": role[0] * 300}}
        for role in ("user", "assistant", "user", "assistant")
    ]


def _fake_claude(interesting: bool):
    def fake_run(args, **kwargs):
        model = args[args.index("--model") + 1]
        if model == "haiku":
            structured = {"interesting": interesting, "reason": "filter reason"}
        else:
            structured = {
                "learnings": [
                    {"content": "use a tmp file", "tags": ["io"], "category": "gotcha"}
                ]
            }
        stdout = json.dumps({"is_error": False, "structured_output": structured})
        return subprocess.CompletedProcess(args, 0, stdout=stdout.encode(), stderr=b"")

    return fake_run


def test_run_skips_short_conversation(home, tmp_path):
    _write_log(home / "-proj", "s1", [{"type": "user", "message": {"content": "hi"}}])
    state_path = tmp_path / "state.json"

    assert main(["run", "--state", str(state_path)]) == 0

    state = State.load(state_path)
    conv = state.conversations["s1"]
    assert conv.status == Status.HEURISTIC_SKIPPED
    assert conv.project == "-proj"
    assert conv.filter_reason == "too few messages (<=1 user AND <=1 assistant)"


def test_run_extracts_learnings(home, tmp_path, capsys):
    _write_log(home / "-proj", "s2", _long_conversation())
    state_path = tmp_path / "state.json"

    with patch("subprocess.run", side_effect=_fake_claude(True)):
        assert main(["run", "--state", str(state_path)]) == 0

    conv = State.load(state_path).conversations["s2"]
    assert conv.status == Status.EXTRACTED
    assert conv.filter_reason is None
    assert [(l.content, l.tags, l.category, l.approved) for l in conv.learnings] == [
        ("use a tmp file", ["io"], "gotcha", False)
    ]
    out = capsys.readouterr().out
    assert "1 interesting" in out
    assert "1 learnings" in out


def test_run_records_not_interesting(home, tmp_path):
    _write_log(home / "-proj", "s3", _long_conversation())
    state_path = tmp_path / "state.json"

    with patch("subprocess.run", side_effect=_fake_claude(False)) as run:
        assert main(["run", "--state", str(state_path)]) == 0

    conv = State.load(state_path).conversations["s3"]
    assert conv.status == Status.NOT_INTERESTING
    assert conv.filter_reason == "filter reason"
    assert run.call_count == 1


def test_run_claude_failure_leaves_conversation_pending(home, tmp_path):
    _write_log(home / "-proj", "s4", _long_conversation())
    state_path = tmp_path / "state.json"

    def failing(args, **kwargs):
        return subprocess.CompletedProcess(args, 1, stdout=b"", stderr=b"boom")

    with patch("subprocess.run", side_effect=failing):
        assert main(["run", "--state", str(state_path)]) == 0

    assert State.load(state_path).conversations == {}


def test_run_project_filter_excludes_others(home, tmp_path):
    _write_log(home / "-proj", "s5", [{"type": "user", "message": {"content": "hi"}}])
    state_path = tmp_path / "state.json"

    assert main(["run", "--project", "other", "--state", str(state_path)]) == 0
    assert not state_path.exists()


def test_run_already_processed_prints_completed(home, tmp_path, capsys):
    _write_log(home / "-proj", "s6", [{"type": "user", "message": {"content": "hi"}}])
    state_path = tmp_path / "state.json"
    State(
        conversations={
            "s6": ConversationState(
                project="-proj", session_id="s6", status=Status.NOT_INTERESTING
            )
        }
    ).save(state_path)

    assert main(["run", "--state", str(state_path)]) == 0
    out = capsys.readouterr().out
    assert out.startswith("\u2713 -proj")
    assert "1 skipped" in out
    assert State.load(state_path).conversations["s6"].status == Status.NOT_INTERESTING


def _extracted_state(path: Path) -> None:
    State(
        conversations={
            "s1": ConversationState(
                project="p",
                session_id="s1",
                status=Status.EXTRACTED,
                learnings=[
                    Learning(content="keep", tags=["a"], category="gotcha", approved=True),
                    Learning(content="drop", tags=["b"], category="gotcha"),
                ],
            )
        }
    ).save(path)


def test_store_marks_stored(mocked, tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MEMORY_URL", MEMORY_URL)
    monkeypatch.setenv("MEMORY_API_KEY", "placeholder")
    mocked.add(
        responses.POST, f"{MEMORY_URL}/mcp", json={"jsonrpc": "2.0", "id": 1, "result": {}}
    )
    state_path = tmp_path / "state.json"
    _extracted_state(state_path)

    assert main(["store", "--state", str(state_path)]) == 0

    assert State.load(state_path).conversations["s1"].status == Status.STORED
    assert "stored 1, skipped 1 unapproved, 0 failed" in capsys.readouterr().out
    sent = json.loads(mocked.calls[0].request.body)
    assert sent["params"]["arguments"] == {"content": "keep", "tags": ["a"]}
    assert mocked.calls[0].request.headers["Authorization"] == "Bearer placeholder"


def test_store_failure_keeps_extracted(mocked, tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MEMORY_URL", MEMORY_URL)
    monkeypatch.setenv("MEMORY_API_KEY", "placeholder")
    mocked.add(responses.POST, f"{MEMORY_URL}/mcp", status=500, body="down")
    state_path = tmp_path / "state.json"
    _extracted_state(state_path)

    assert main(["store", "--state", str(state_path)]) == 0

    assert State.load(state_path).conversations["s1"].status == Status.EXTRACTED
    assert "stored 0, skipped 1 unapproved, 1 failed" in capsys.readouterr().out


def test_store_requires_api_key(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("MEMORY_API_KEY", raising=False)
    assert main(["store", "--state", str(tmp_path / "state.json")]) == 1
    assert "MEMORY_API_KEY not set" in capsys.readouterr().err


def test_vote_requires_api_key(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("MEMORY_API_KEY", raising=False)
    assert main(["vote", "--state", str(tmp_path / "vote.json")]) == 1
    assert "MEMORY_API_KEY not set" in capsys.readouterr().err


def test_vote_records_no_memories(home, tmp_path, monkeypatch):
    monkeypatch.setenv("MEMORY_API_KEY", "placeholder")
    _write_log(home / "-proj", "v1", _long_conversation())
    state_path = tmp_path / "vote.json"

    assert main(["vote", "--state", str(state_path)]) == 0

    saved = json.loads(state_path.read_text(encoding="utf-8"))
    assert saved["conversations"]["v1"]["status"] == "no_memories"
    assert saved["conversations"]["v1"]["project"] == "-proj"


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        main(["nonsense"])