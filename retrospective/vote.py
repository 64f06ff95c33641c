"""Judging recalled memories as helpful or harmful and submitting the votes."""

from __future__ import annotations

import enum
import json
import logging
import os
import sys
from collections.abc import MutableSequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests

from .claude import ClaudeError, run_claude
from .display import clean_project_name
from .memory_extract import ConversationWithMemories, extract_memories_from_conversation
from .parser import discover_projects

logger = logging.getLogger(__name__)

_CLEAR_LINE = "\x1b[2K\r"
HELPFUL = "helpful"
HARMFUL = "harmful"


class VoteStatus(str, enum.Enum):
    """Where a conversation is in the voting pipeline."""

    NO_MEMORIES = "no_memories"
    EVALUATED = "evaluated"
    VOTED = "voted"
    FAILED = "failed"


def _object(value: Any) -> dict:
    if not isinstance(value, dict):
        raise TypeError("expected a JSON object")
    return value


def _field(data: dict, key: str, kind: type) -> Any:
    value = data[key]
    if not isinstance(value, kind):
        raise TypeError(f"field {key!r} must be {kind.__name__}")
    return value


@dataclass
class MemoryVote:
    """The verdict on one memory and whether it reached the server."""

    memory_id: str
    vote: str
    reason: str
    submitted: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> MemoryVote:
        data = _object(data)
        submitted = data.get("submitted", False)
        if not isinstance(submitted, bool):
            raise TypeError("field 'submitted' must be bool")
        return cls(
            memory_id=_field(data, "memory_id", str),
            vote=_field(data, "vote", str),
            reason=_field(data, "reason", str),
            submitted=submitted,
        )

    def to_dict(self) -> dict:
        return {
            "memory_id": self.memory_id,
            "vote": self.vote,
            "reason": self.reason,
            "submitted": self.submitted,
        }


@dataclass
class ConversationVoteState:
    """The voting outcome recorded for one conversation."""

    project: str
    session_id: str
    status: VoteStatus
    votes: list[MemoryVote] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ConversationVoteState:
        data = _object(data)
        votes = data.get("votes", [])
        if not isinstance(votes, list):
            raise TypeError("field 'votes' must be a list")
        return cls(
            project=_field(data, "project", str),
            session_id=_field(data, "session_id", str),
            status=VoteStatus(_field(data, "status", str)),
            votes=[MemoryVote.from_dict(item) for item in votes],
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "project": self.project,
            "session_id": self.session_id,
            "status": self.status.value,
        }
        if self.votes:
            result["votes"] = [vote.to_dict() for vote in self.votes]
        return result


@dataclass
class VoteState:
    """All voted conversations, keyed by session id."""

    conversations: dict[str, ConversationVoteState] = field(default_factory=dict)

    @classmethod
    def load(cls, path: str | Path) -> VoteState:
        """Load from ``path``; a missing file gives an empty state.

        Raises ``ValueError`` if the file is not valid vote state JSON.
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
                    key: ConversationVoteState.from_dict(value)
                    for key, value in conversations.items()
                }
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise ValueError(f"parsing vote state: {path}") from exc

    def to_dict(self) -> dict:
        return {
            "conversations": {
                key: value.to_dict() for key, value in self.conversations.items()
            }
        }

    def save(self, path: str | Path) -> None:
        """Write the state atomically via a temporary file beside ``path``."""
        path = Path(path)
        tmp_path = path.with_suffix(".tmp")
        content = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, path)


_EVAL_PROMPT = (
    "You are evaluating whether memories recalled during a Claude Code conversation were useful or hurtful.\n"
    "\n"
    "A memory is \"helpful\" if it:\n"
    "- Provided relevant context that improved the assistant's response\n"
    "- Contained information that was directly applicable to the task\n"
    "- Helped avoid mistakes or saved time\n"
    "- Correctly informed a decision or approach\n"
    "\n"
    "A memory is \"harmful\" if it:\n"
    "- Was completely irrelevant to the conversation\n"
    "- Contained outdated or wrong information that could mislead\n"
    "- Added noise without value\n"
    "- Led to incorrect assumptions or approaches\n"
    "\n"
    "If a memory is borderline or neutral, vote \"helpful\" \u2014 only vote \"harmful\" when you're confident it added no value or was actively detrimental.\n"
    "\n"
    "<conversation>\n{chunk_text}\n</conversation>\n"
    "\n"
    "<memories_to_evaluate>\n{memories_list}\n</memories_to_evaluate>\n"
    "\n"
    "For each memory, provide your evaluation with its exact ID, vote (\"helpful\" or \"harmful\"), and a brief reason."
)

_EVAL_SCHEMA = {
    "type": "object",
    "properties": {
        "evaluations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "memory_id": {"type": "string"},
                    "vote": {"type": "string", "enum": [HELPFUL, HARMFUL]},
                    "reason": {"type": "string"},
                },
                "required": ["memory_id", "vote", "reason"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["evaluations"],
    "additionalProperties": False,
}


def build_eval_prompt(chunk_text: str, memories_list: str) -> str:
    """Build the prompt asking for a verdict on each listed memory."""
    return _EVAL_PROMPT.format(chunk_text=chunk_text, memories_list=memories_list)


def _parse_evaluations(output: str) -> list[dict[str, str]]:
    data = _object(json.loads(output))
    items = _field(data, "evaluations", list)
    return [
        {
            "memory_id": _field(_object(item), "memory_id", str),
            "vote": _field(item, "vote", str),
            "reason": _field(item, "reason", str),
        }
        for item in items
    ]


def evaluate_conversation(conv: ConversationWithMemories) -> list[MemoryVote]:
    """Ask a model to judge every recalled memory; one vote per memory.

    A memory judged in several chunks gets the majority verdict, ties going
    to helpful. Raises ``ClaudeError`` if any chunk cannot be evaluated.
    """
    chunks = conv.into_chunks()
    all_evals: dict[str, list[dict[str, str]]] = {}

    for number, chunk in enumerate(chunks, start=1):
        if not chunk.memory_ids:
            continue
        memories_list = "\n".join(
            f"{index}. [ID: {memory_id}]"
            for index, memory_id in enumerate(chunk.memory_ids, start=1)
        )
        label = f" (chunk {number}/{len(chunks)})" if len(chunks) > 1 else ""
        prompt = build_eval_prompt(chunk.text, memories_list)
        try:
            output = run_claude(prompt, "haiku", _EVAL_SCHEMA)
        except ClaudeError as exc:
            raise ClaudeError(f"evaluating chunk{label}: {exc}") from exc
        try:
            evaluations = _parse_evaluations(output)
        except (ValueError, KeyError, TypeError) as exc:
            raise ClaudeError("parsing evaluation response") from exc
        for evaluation in evaluations:
            all_evals.setdefault(evaluation["memory_id"], []).append(evaluation)

    votes = []
    for memory_id, evals in all_evals.items():
        helpful = sum(1 for e in evals if e["vote"] == HELPFUL)
        harmful = len(evals) - helpful
        winner = HELPFUL if helpful >= harmful else HARMFUL
        reason = next((e["reason"] for e in evals if e["vote"] == winner), "")
        votes.append(MemoryVote(memory_id=memory_id, vote=winner, reason=reason))
    return votes


def submit_votes(
    session: requests.Session,
    base_url: str,
    api_key: str,
    votes: MutableSequence[MemoryVote],
) -> tuple[int, int]:
    """Post each unsubmitted vote, marking those accepted.

    Returns the numbers of votes submitted and failed.
    """
    submitted = 0
    failed = 0
    for vote in votes:
        if vote.submitted:
            continue
        url = f"{base_url}/api/v1/memories/{vote.memory_id}/vote"
        try:
            response = session.post(
                url,
                headers={"Authorization": f"Bearer {api_key}"},
                json={"vote": vote.vote},
            )
        except requests.RequestException as exc:
            logger.warning("vote request failed for %s: %s", vote.memory_id, exc)
            failed += 1
            continue
        if response.ok:
            print(f"  {vote.memory_id} {vote.vote} ({vote.reason})")
            vote.submitted = True
            submitted += 1
        else:
            logger.warning(
                "vote submission failed for %s: %s %s",
                vote.memory_id,
                response.status_code,
                response.text,
            )
            failed += 1
    return submitted, failed


def _progress(text: str) -> None:
    sys.stderr.write(f"{_CLEAR_LINE}{text}")
    sys.stderr.flush()


def run_vote(
    state_path: str | Path,
    project_filter: str | None,
    base_url: str,
    api_key: str,
) -> None:
    """Evaluate memories recalled in every new conversation and submit the votes."""
    state_path = Path(state_path)
    base = Path.home() / ".claude" / "projects"

    state = VoteState.load(state_path)
    projects = discover_projects(base)

    total_evaluated = 0
    total_voted = 0
    total_skipped = 0
    total_failed = 0

    with requests.Session() as session:
        for project_name, conv_paths in projects:
            if project_filter is not None and project_filter not in project_name:
                continue

            clean_name = clean_project_name(project_name)
            pending = [p for p in conv_paths if p.stem not in state.conversations]

            if not pending:
                statuses = [
                    c.status
                    for c in state.conversations.values()
                    if c.project == project_name
                ]
                print(
                    f"\u2713 {clean_name:<30} {len(conv_paths):>3} conv  "
                    f"{statuses.count(VoteStatus.NO_MEMORIES):>3} no-mem  "
                    f"{statuses.count(VoteStatus.EVALUATED):>3} evaluated  "
                    f"{statuses.count(VoteStatus.VOTED):>3} voted"
                )
                continue

            total = len(conv_paths)
            handled = total - len(pending)

            for path in pending:
                session_id = path.stem
                handled += 1
                _progress(f"  {clean_name:<30} {handled}/{total}")

                def record(status: VoteStatus, votes: list[MemoryVote] | None = None) -> None:
                    state.conversations[session_id] = ConversationVoteState(
                        project=project_name,
                        session_id=session_id,
                        status=status,
                        votes=votes or [],
                    )
                    state.save(state_path)

                try:
                    conv = extract_memories_from_conversation(path)
                except (OSError, ValueError) as exc:
                    logger.warning("failed to extract memories from %s: %s", session_id, exc)
                    total_failed += 1
                    record(VoteStatus.FAILED)
                    continue
                if conv is None:
                    total_skipped += 1
                    record(VoteStatus.NO_MEMORIES)
                    continue

                _progress(
                    f"  {clean_name:<30} {handled}/{total} | "
                    f"evaluating {len(conv.memories)} memories..."
                )
                try:
                    votes = evaluate_conversation(conv)
                except ClaudeError as exc:
                    logger.warning("evaluation failed for %s: %s", session_id, exc)
                    total_failed += 1
                    record(VoteStatus.FAILED)
                    continue

                total_evaluated += len(votes)
                _progress(
                    f"  {clean_name:<30} {handled}/{total} | submitting {len(votes)} votes..."
                )
                submitted, failed = submit_votes(session, base_url, api_key, votes)
                total_voted += submitted
                total_failed += failed

                status = (
                    VoteStatus.VOTED
                    if all(v.submitted for v in votes)
                    else VoteStatus.EVALUATED
                )
                record(status, votes)

            sys.stderr.write(f"{_CLEAR_LINE}\u2713 {clean_name:<30} done\n")

        retry_ids = [
            session_id
            for session_id, conv_state in state.conversations.items()
            if conv_state.status == VoteStatus.EVALUATED
            and (project_filter is None or project_filter in conv_state.project)
        ]

        if retry_ids:
            sys.stderr.write(
                f"retrying {len(retry_ids)} conversations with unsubmitted votes...\n"
            )
            for session_id in retry_ids:
                conv_state = state.conversations[session_id]
                unsubmitted = sum(1 for v in conv_state.votes if not v.submitted)
                _progress(f"  {session_id} | submitting {unsubmitted} votes...")
                submitted, failed = submit_votes(
                    session, base_url, api_key, conv_state.votes
                )
                total_voted += submitted
                total_failed += failed
                if all(v.submitted for v in conv_state.votes):
                    conv_state.status = VoteStatus.VOTED
                state.save(state_path)
            sys.stderr.write(f"{_CLEAR_LINE}done retrying\n")

    print()
    print(
        f"evaluated: {total_evaluated}, voted: {total_voted}, "
        f"skipped (no memories): {total_skipped}, failed: {total_failed}"
    )