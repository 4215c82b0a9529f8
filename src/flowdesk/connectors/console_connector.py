# src/flowdesk/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)

PROMPT = ">>> "


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    If stdout is not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def print_notice(message: str, is_error: bool) -> None:
    """Notifier: toast-style one-liners for mutation outcomes."""
    _print_ts(f"[{'error' if is_error else 'ok'}] {message}")


def console_confirm(prompt: str) -> bool:
    """Blocking y/N question; anything but an explicit yes declines."""
    try:
        answer = input(f"[{_ts_local()}] {prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


async def run_console_loop(state: AppState) -> None:
    app_name = str(getattr(state.settings, "app_name", "flowdesk"))
    logger.info("Console connector started (api=%s).", getattr(state.settings, "api_base_url", "?"))
    _print_ts(f"[{app_name}] Use /help for commands. Use /exit to quit.\n")

    ident = state.session.identity
    if ident is not None:
        _print_ts(f"Logged in as {ident.name} ({ident.org_name}).")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, PROMPT)).strip()
            _rewrite_prev_line(f"[{_ts_local()}] {PROMPT}{user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            response = await command_registry.handle(state, user_input, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list them."
        _print_ts(response)

    logger.info("Console connector finished.")
