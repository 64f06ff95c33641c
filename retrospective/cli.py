"""Command-line entry point: mine conversations, store learnings, vote on memories."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import requests

from . import claude
from .claude import ClaudeError
from .condense import condense
from .display import Display, ProjectProgress
from .heuristics import heuristic_filter
from .parser import discover_projects, parse_conversation
from .state import ConversationState, Learning, State, Status
from .store import StoreError, store_learnings
from .vote import run_vote

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_URL = "http://localhost:8000"
_SKIPPED_STATUSES = (Status.HEURISTIC_SKIPPED, Status.NOT_INTERESTING)


class CommandError(Exception):
    """A command cannot run with the given settings."""


def _projects_dir() -> Path:
    return Path.home() / ".claude" / "projects"


def _memory_settings() -> tuple[str, str]:
    memory_url = os.environ.get("MEMORY_URL", DEFAULT_MEMORY_URL)
    memory_key = os.environ.get("MEMORY_API_KEY")
    if memory_key is None:
        raise CommandError("MEMORY_API_KEY not set")
    return memory_url, memory_key


def _process_conversation(
    path: Path,
    project_name: str,
    state: State,
    state_path: Path,
    progress: ProjectProgress,
    display: Display,
) -> None:
    session_id = path.stem

    def record(status: Status, reason: str | None, learnings: list[Learning] | None = None) -> None:
        state.conversations[session_id] = ConversationState(
            project=project_name,
            session_id=session_id,
            status=status,
            filter_reason=reason,
            learnings=learnings or [],
        )

    try:
        conv = parse_conversation(path)
    except (OSError, ValueError) as exc:
        logger.warning("failed to parse conversation %s: %s", session_id, exc)
        record(Status.FAILED, f"parse error: {exc}")
        progress.handled += 1
        progress.skipped += 1
        state.save(state_path)
        display.print_active(progress)
        return

    reason = heuristic_filter(conv)
    if reason is not None:
        record(Status.HEURISTIC_SKIPPED, reason)
        progress.handled += 1
        progress.skipped += 1
        state.save(state_path)
        display.print_active(progress)
        return

    condensed = condense(conv)

    try:
        verdict = claude.filter_conversation(condensed)
    except ClaudeError as exc:
        logger.warning("haiku filter failed for %s: %s", session_id, exc)
        progress.handled += 1
        display.print_active(progress)
        return
    if not verdict.interesting:
        record(Status.NOT_INTERESTING, verdict.reason)
        progress.handled += 1
        progress.skipped += 1
        state.save(state_path)
        display.print_active(progress)
        return

    try:
        extraction = claude.extract_learnings(condensed)
    except ClaudeError as exc:
        logger.warning("sonnet extraction failed for %s: %s", session_id, exc)
        progress.handled += 1
    else:
        learnings = [
            Learning(content=item.content, tags=item.tags, category=item.category)
            for item in extraction.learnings
        ]
        record(Status.EXTRACTED, None, learnings)
        progress.handled += 1
        progress.interesting += 1
        progress.learnings += len(learnings)

    state.save(state_path)
    display.print_active(progress)


def _run(args: argparse.Namespace) -> None:
    state_path = Path(args.state)
    state = State.load(state_path)
    projects = discover_projects(_projects_dir())
    display = Display()

    for project_name, conv_paths in projects:
        if args.project is not None and args.project not in project_name:
            continue

        progress = ProjectProgress(name=project_name, total=len(conv_paths))
        for path in conv_paths:
            conv_state = state.conversations.get(path.stem)
            if conv_state is None:
                continue
            progress.handled += 1
            if conv_state.status in _SKIPPED_STATUSES:
                progress.skipped += 1
            else:
                progress.interesting += 1
                progress.learnings += len(conv_state.learnings)

        if progress.handled == progress.total:
            display.print_completed(progress)
            continue

        display.print_active(progress)
        pending = [p for p in conv_paths if not state.is_processed(p.stem)]
        for path in pending:
            _process_conversation(path, project_name, state, state_path, progress, display)

        display.print_completed(progress)

    print()


def _store(args: argparse.Namespace) -> None:
    state_path = Path(args.state)
    state = State.load(state_path)
    memory_url, memory_key = _memory_settings()

    stored = skipped = failed = 0
    with requests.Session() as session:
        for conv_state in state.conversations.values():
            if conv_state.status != Status.EXTRACTED:
                continue
            approved_count = 0
            success_count = 0
            for learning in conv_state.learnings:
                if not learning.approved:
                    skipped += 1
                    continue
                approved_count += 1
                try:
                    store_learnings(
                        session, memory_url, memory_key, learning.content, learning.tags
                    )
                except StoreError as exc:
                    logger.warning("failed to store learning: %s", exc)
                    failed += 1
                else:
                    stored += 1
                    success_count += 1
            if approved_count > 0 and success_count == approved_count:
                conv_state.status = Status.STORED

    state.save(state_path)
    print(f"stored {stored}, skipped {skipped} unapproved, {failed} failed")


def _vote(args: argparse.Namespace) -> None:
    memory_url, memory_key = _memory_settings()
    run_vote(Path(args.state), args.project, memory_url, memory_key)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="retro")
    commands = parser.add_subparsers(dest="command", required=True)

    run_cmd = commands.add_parser("run", help="extract learnings from conversations")
    run_cmd.add_argument("--concurrency", type=int, default=10)
    run_cmd.add_argument("--project")
    run_cmd.add_argument("--state", default="state.json")
    run_cmd.set_defaults(handler=_run)

    store_cmd = commands.add_parser("store", help="store approved learnings")
    store_cmd.add_argument("--state", default="state.json")
    store_cmd.set_defaults(handler=_store)

    vote_cmd = commands.add_parser("vote", help="vote on recalled memories")
    vote_cmd.add_argument("--project")
    vote_cmd.add_argument("--state", default="vote-state.json")
    vote_cmd.set_defaults(handler=_vote)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the ``retro`` command; returns the process exit status."""
    logging.basicConfig(level=logging.INFO)
    args = _build_parser().parse_args(argv)
    try:
        args.handler(args)
    except (CommandError, OSError, ValueError, ClaudeError, StoreError, requests.RequestException) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())