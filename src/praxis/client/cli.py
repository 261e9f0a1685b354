"""CLI client for the Praxis API."""

import json
import logging
import time
from typing import (
    Any,
    Dict,
    Iterator,
    Tuple,
    cast,
)

import httpx

from praxis.common import (
    AnsiColors,
    colored_print,
)
from praxis.config import settings

logger = logging.getLogger(__name__)

RESULT_PREVIEW = 300


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------
def _api_url(endpoint: str) -> str:
    return f"http://localhost:{settings.API_PORT}{endpoint}"


def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # SIGINT must interrupt the blocking read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        return input().strip(), True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(
    method: str, endpoint: str, data: Dict[str, Any] | None = None, max_retries: int = 5
) -> Dict[str, Any]:
    """Send a JSON request to the API, retrying with exponential backoff while it starts up."""
    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=30.0) as client:
                response = client.request(method, _api_url(endpoint), json=data)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError as exc:
            if attempt == max_retries - 1:
                logger.error("API request error: %s", exc)
                break
            retry_delay = 0.5 * (2**attempt)  # 0.5s, 1s, 2s, 4s...
            logger.info(
                "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                retry_delay,
                attempt + 1,
                max_retries,
            )
            time.sleep(retry_delay)
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            logger.error("API returned %d: %s", exc.response.status_code, detail)
            return {"error": detail}
        except httpx.HTTPError as exc:
            logger.error("API request error: %s", exc)
            return {"error": f"Error connecting to API: {exc}"}

    return {"error": f"Failed to connect to API after {max_retries} attempts"}


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return f"API error: {body['detail']}"
    return response.text


def stream_message(session_id: str, message: str) -> Iterator[Dict[str, Any]]:
    """Post *message* and yield the decoded events of the NDJSON response."""
    with httpx.Client(timeout=None) as client:
        with client.stream(
            "POST", _api_url(f"/sessions/{session_id}/messages"), json={"message": message}
        ) as response:
            if response.is_error:
                response.read()
                yield {"type": "error", "error": _error_detail(response)}
                return
            for line in response.iter_lines():
                if not line.strip():
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed event line: %.100s", line)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------
def _preview(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    return text if len(text) <= RESULT_PREVIEW else text[:RESULT_PREVIEW] + "..."


def format_event(event: Dict[str, Any]) -> Tuple[str, AnsiColors] | None:
    """Terminal line (and color) for one event, or ``None`` for events that print nothing."""
    kind = event.get("type")
    status = event.get("status")

    if kind == "content":
        return event.get("content", ""), AnsiColors.YELLOW
    if kind == "thinking":
        if status == "start":
            return "\n[thinking]\n", AnsiColors.GREY
        if status == "update":
            return event.get("content", ""), AnsiColors.GREY
        return "\n", AnsiColors.GREY
    if kind == "context_selection" and status == "complete":
        names = [ctx["name"] for ctx in event.get("contexts") or []]
        return f"[context] {', '.join(names) or 'none'}\n", AnsiColors.BLUE
    if kind == "planning" and status == "complete":
        todos = event.get("todos") or []
        lines = [f"  {i}. {todo['title']}" for i, todo in enumerate(todos, start=1)]
        return "[plan]\n" + ("\n".join(lines) or "  (no TODOs)") + "\n", AnsiColors.BLUE
    if kind == "todo_start":
        return f"\n>> {event['todo']['title']}\n", AnsiColors.MAGENTA
    if kind == "tool_call_start":
        call = event["tool_call"]
        arguments = _preview(call.get("arguments", {}))
        return f"\n[{call['display_name']}] {arguments}\n", AnsiColors.MAGENTA
    if kind == "tool_call_result":
        return f"  -> {_preview(event.get('result'))}\n", AnsiColors.GREEN
    if kind == "tool_call_error":
        return f"  !! {event.get('error')}\n", AnsiColors.RED
    if kind == "reflection" and status == "complete":
        return f"\n[reflection] {event['reflection']['type']}\n", AnsiColors.BLUE
    if kind == "memo_added":
        return f"[memo] {event['memo'].get('title')}\n", AnsiColors.BLUE
    if kind == "todo_retry":
        return "[retry requested]\n", AnsiColors.RED
    if kind == "replan_required":
        return "[replan required; remaining TODOs skipped]\n", AnsiColors.RED
    if kind == "compression":
        return f"[history] {event.get('content')}\n", AnsiColors.GREY
    if kind == "summary" and status == "start":
        return "\n[answer]\n", AnsiColors.GREEN
    if kind == "error":
        return f"\n{event.get('error')}\n", AnsiColors.RED
    if kind == "stopped":
        return "\n[stopped]\n", AnsiColors.RED
    return None


# ---------------------------------------------------------------------------
# CLI loop
# ---------------------------------------------------------------------------
def run_cli() -> None:
    """Run the CLI client that communicates with the API."""
    session = call_api("POST", "/sessions", {})
    session_id = session.get("session_id")
    if not session_id:
        colored_print(f"Failed to create a session: {session.get('error')}", AnsiColors.RED)
        return

    colored_print("\nPraxis shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break
        if not user_msg:
            continue
        if user_msg.lower() in {"exit", "quit"}:
            break

        try:
            for event in stream_message(session_id, user_msg):
                rendered = format_event(event)
                if rendered is not None:
                    colored_print(rendered[0], rendered[1], end="", flush=True)
        except KeyboardInterrupt:
            call_api("POST", f"/sessions/{session_id}/stop")
            colored_print("\n[stop requested]", AnsiColors.RED)
        except httpx.HTTPError as exc:
            colored_print(f"\nConnection lost: {exc}", AnsiColors.RED)


if __name__ == "__main__":
    run_cli()
