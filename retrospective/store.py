"""Storing learnings in the memory server over JSON-RPC."""

from __future__ import annotations

import json
from collections.abc import Sequence

import requests


class StoreError(Exception):
    """The memory server did not accept a learning."""


def store_learnings(
    session: requests.Session,
    base_url: str,
    api_key: str,
    content: str,
    tags: Sequence[str],
) -> None:
    """Call the server's ``store_memory`` tool; raise ``StoreError`` on failure."""
    body = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "tools/call",
        "params": {
            "name": "store_memory",
            "arguments": {"content": content, "tags": list(tags)},
        },
    }

    try:
        response = session.post(
            f"{base_url}/mcp",
            headers={"Authorization": f"Bearer {api_key}"},
            json=body,
        )
    except requests.RequestException as exc:
        raise StoreError("sending store request") from exc

    text = response.text
    if not response.ok:
        raise StoreError(f"store failed with {response.status_code} {response.reason}: {text}")

    try:
        payload = json.loads(text)
        if not isinstance(payload, dict):
            raise ValueError("response is not an object")
        error = payload.get("error")
        if error is not None and not (
            isinstance(error, dict) and isinstance(error.get("message"), str)
        ):
            raise ValueError("malformed error object")
    except ValueError as exc:
        raise StoreError("parsing json-rpc response") from exc

    if error is not None:
        raise StoreError(f"json-rpc error: {error['message']}")