"""CLI client for the TaskFlow API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    List,
    Tuple,
    cast,
)

import httpx

from taskflow.common import (
    AnsiColors,
    colored_print,
)
from taskflow.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(
    endpoint: str, data: Dict[str, Any], user_id: str, max_retries: int = 5
) -> Dict[str, Any]:
    """Make a POST request to the API as *user_id* and return the JSON body, with retries."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=120.0) as client:
                response = client.post(api_url, json=data, headers={"X-User-Id": user_id})
        except httpx.ConnectError as e:
            # API may still be starting up: retry with exponential backoff
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            return {"error": f"Error connecting to API: {e}"}
        except httpx.HTTPError as e:
            logger.error("API request error: %s", e)
            return {"error": f"Error connecting to API: {e}"}

        if response.status_code == 429:
            detail = response.json().get("detail", {})
            return {"error": f"Rate limited, retry in {detail.get('retry_after', '?')}s"}
        if response.is_error:
            detail = response.json().get("detail", response.text)
            return {"error": f"API error ({response.status_code}): {detail}"}
        return cast(Dict[str, Any], response.json())

    return {"error": f"Failed to connect to API after {max_retries} attempts"}


def print_steps(steps: List[Dict[str, Any]]) -> None:
    """Show the agent's audit trail."""
    for i, step in enumerate(steps, start=1):
        if step.get("thought"):
            colored_print(f"  {i}. {step['thought']}", AnsiColors.GREY)
        if step.get("tool"):
            colored_print(f"     -> {step['tool']} [{step['outcome']}]", AnsiColors.GREEN)


def run_cli(user_id: str = "cli-user") -> None:
    """Run the CLI client that communicates with the API."""
    history: List[Dict[str, str]] = []

    colored_print("\nTaskFlow agent - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        response = call_api(
            "/agent", {"message": user_msg, "conversation_history": history}, user_id
        )
        if "error" in response:
            colored_print(response["error"], AnsiColors.RED)
            continue

        print_steps(response.get("steps", []))
        reply = response.get("response", "")
        colored_print(reply, AnsiColors.YELLOW)

        history.append({"role": "user", "content": user_msg})
        history.append({"role": "assistant", "content": reply})


if __name__ == "__main__":
    run_cli()
