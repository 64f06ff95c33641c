# retrospective

Look back over past coding-assistant sessions stored as JSONL logs under
`~/.claude/projects`. The package finds sessions worth learning from, pulls
actionable learnings out of them, stores approved learnings in a memory
server, and votes on whether memories recalled during a session helped.

The language-model steps are carried out by running the `claude` command
line tool, which has to be installed and on your `PATH`.

## Installation

```
pip install .
```

## Commands

All work is done through the `retro` command.

### `retro run`

Goes through every project directory and every session log in it:

1. Sessions with too little conversation are skipped without a model call.
2. The rest are condensed and a fast model decides whether they are
   interesting.
3. Interesting sessions have their learnings extracted by a stronger model.

Progress is kept in a state file, so an interrupted run picks up where it
stopped.

```
retro run --concurrency 10 --project myproject --state state.json
```

- `--project` only handles projects whose directory name contains the text.
- `--state` is the progress file (default `state.json`).

Each extracted learning starts out with `"approved": false`. Edit the state
file and set `approved` to `true` for the ones you want to keep.

### `retro store`

Sends every approved learning to the memory server's `store_memory` tool.

```
retro store --state state.json
```

### `retro vote`

Finds the memories recalled during each session, asks a model whether each
one was helpful or harmful, and submits the vote to the memory server.
Votes that could not be submitted are retried on the next run.

```
retro vote --project myproject --state vote-state.json
```

## Configuration

| Variable         | Meaning                                   | Default                 |
|------------------|-------------------------------------------|-------------------------|
| `MEMORY_URL`     | Base URL of the memory server             | `http://localhost:8000` |
| `MEMORY_API_KEY` | Bearer key sent to the server (required)  | none                    |

`MEMORY_API_KEY` is needed by `retro store` and `retro vote`.

## Library use

The pieces can also be used from Python:

```python
from pathlib import Path

from retrospective.parser import discover_projects, parse_conversation
from retrospective.heuristics import heuristic_filter
from retrospective.condense import condense

for project, paths in discover_projects(Path.home() / ".claude" / "projects"):
    for path in paths:
        conversation = parse_conversation(path)
        print(project, path.name, heuristic_filter(conversation))
        print(condense(conversation)[:200])
```

## Running the tests

```
pip install ".[test]"
pytest
```