"""Asking the ``claude`` command-line tool for structured judgements."""

from __future__ import annotations

import json
import os
import subprocess
from dataclasses import dataclass
from typing import Any


class ClaudeError(Exception):
    """The ``claude`` tool failed or returned an unusable answer."""


@dataclass
class FilterResponse:
    interesting: bool
    reason: str


@dataclass
class ExtractedLearning:
    content: str
    tags: list[str]
    category: str


@dataclass
class ExtractionResponse:
    learnings: list[ExtractedLearning]


_FILTER_SCHEMA = {
    "type": "object",
    "properties": {
        "interesting": {"type": "boolean"},
        "reason": {"type": "string"},
    },
    "required": ["interesting", "reason"],
    "additionalProperties": False,
}

_EXTRACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "learnings": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "content": {"type": "string"},
                    "tags": {"type": "array", "items": {"type": "string"}},
                    "category": {"type": "string"},
                },
                "required": ["content", "tags", "category"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["learnings"],
    "additionalProperties": False,
}

_FILTER_PROMPT = (
    "Analyze this Claude Code conversation log. Is it interesting enough to extract learnings from?\n"
    "\n"
    "Interesting = contains debugging insights, architectural decisions, workflow preferences, gotchas, quirks, "
    "patterns, workarounds, user preferences, things that took multiple attempts, things the LLM got wrong initially, "
    "or anything that would make a similar future conversation shorter/smoother.\n"
    "\n"
    "NOT interesting = simple one-off questions, routine code generation with no friction, conversations where "
    "everything went smoothly on the first try with no notable patterns.\n"
    "\n"
    "<conversation>\n{condensed}\n</conversation>"
)

_EXTRACTION_PROMPT = (
    "Analyze this Claude Code conversation log. Extract ALL actionable learnings.\n"
    "\n"
    "Each learning should be something that, if known ahead of time, would have made this conversation "
    "shorter, smoother, or avoided mistakes. Include:\n"
    "- Debugging insights and root causes\n"
    "- Architectural decisions and trade-offs\n"
    "- User preferences and workflow patterns\n"
    "- Gotchas, quirks, and workarounds\n"
    "- Tool usage patterns\n"
    "- Codebase-specific knowledge\n"
    "- Anything else of value\n"
    "\n"
    "Categories: debugging, architecture, preference, gotcha, workflow, pattern, tool-usage, codebase-knowledge\n"
    "\n"
    "For tags, include: the project domain, technologies involved, and the category.\n"
    "\n"
    "<conversation>\n{condensed}\n</conversation>"
)


def _require(data: dict, key: str, kind: type) -> Any:
    value = data[key]
    if not isinstance(value, kind):
        raise TypeError(f"field {key!r} must be {kind.__name__}")
    return value


def _parse_filter(output: str) -> FilterResponse:
    data = json.loads(output)
    if not isinstance(data, dict):
        raise TypeError("expected an object")
    return FilterResponse(
        interesting=_require(data, "interesting", bool),
        reason=_require(data, "reason", str),
    )


def _parse_learning(item: Any) -> ExtractedLearning:
    if not isinstance(item, dict):
        raise TypeError("learning must be an object")
    tags = _require(item, "tags", list)
    if not all(isinstance(t, str) for t in tags):
        raise TypeError("tags must be strings")
    return ExtractedLearning(
        content=_require(item, "content", str),
        tags=list(tags),
        category=_require(item, "category", str),
    )


def _parse_extraction(output: str) -> ExtractionResponse:
    data = json.loads(output)
    if not isinstance(data, dict):
        raise TypeError("expected an object")
    items = _require(data, "learnings", list)
    return ExtractionResponse(learnings=[_parse_learning(item) for item in items])


def filter_conversation(condensed: str) -> FilterResponse:
    """Ask a fast model whether a condensed conversation is worth mining."""
    output = run_claude(_FILTER_PROMPT.format(condensed=condensed), "haiku", _FILTER_SCHEMA)
    try:
        return _parse_filter(output)
    except (ValueError, KeyError, TypeError) as exc:
        raise ClaudeError("parsing filter response") from exc


def extract_learnings(condensed: str) -> ExtractionResponse:
    """Ask a stronger model for the learnings in a condensed conversation."""
    output = run_claude(
        _EXTRACTION_PROMPT.format(condensed=condensed), "sonnet", _EXTRACTION_SCHEMA
    )
    try:
        return _parse_extraction(output)
    except (ValueError, KeyError, TypeError) as exc:
        raise ClaudeError("parsing extraction response") from exc


def run_claude(prompt: str, model: str, json_schema: Any) -> str:
    """Run ``claude`` non-interactively and return its structured output as JSON text."""
    schema_str = json.dumps(json_schema, separators=(",", ":"), sort_keys=True)
    args = [
        "claude",
        "--print",
        "--model",
        model,
        "--output-format",
        "json",
        "--json-schema",
        schema_str,
        "--no-session-persistence",
        "--dangerously-skip-permissions",
        prompt,
    ]
    env = {key: value for key, value in os.environ.items() if key != "CLAUDECODE"}

    try:
        completed = subprocess.run(
            args,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            env=env,
        )
    except OSError as exc:
        raise ClaudeError("spawning claude process") from exc

    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", errors="replace")
        raise ClaudeError(f"claude exited with exit status: {completed.returncode}: {stderr}")

    try:
        stdout = completed.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ClaudeError("claude output is not utf-8") from exc

    try:
        wrapper = json.loads(stdout)
    except ValueError as exc:
        raise ClaudeError("parsing claude json output") from exc

    if not isinstance(wrapper, dict):
        raise ClaudeError("no structured_output in claude response")

    if wrapper.get("is_error") is True:
        message = wrapper.get("result")
        if not isinstance(message, str):
            message = "unknown error"
        raise ClaudeError(f"claude returned an error: {message}")

    if "structured_output" not in wrapper:
        raise ClaudeError("no structured_output in claude response")

    return json.dumps(wrapper["structured_output"], separators=(",", ":"), ensure_ascii=False)