# src/flowdesk/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the HTTP client, session context, entity store and coordinator into AppState,
- restores a previous session from the local session file.
"""

from __future__ import annotations

import logging

import httpx

from ..api.client import TrackerClient, make_timeout
from ..config import get_settings
from ..core.ports import Confirmer, Notifier
from ..core.session import FileSessionStorage, SessionContext
from ..core.state import AppState
from ..tasks.coordinator import MutationCoordinator
from ..tasks.store import EntityStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.session_path.parent.mkdir(parents=True, exist_ok=True)


def _always_yes(prompt: str) -> bool:
    return True


def create_initial_state(
    *,
    settings=None,
    confirm: Confirmer | None = None,
    notify: Notifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if not settings.confirm_destructive:
        confirm = _always_yes
    elif confirm is None:
        raise ValueError("a confirmation prompt is required for destructive actions")

    _ensure_local_dirs(settings)

    # The client reads the token from the session on every request, and a
    # rejected token ends the session.
    api = TrackerClient(
        settings.api_base_url,
        token_provider=lambda: session.token,
        timeout=make_timeout(settings.connect_timeout_seconds, settings.read_timeout_seconds),
        transport=transport,
        on_unauthorized=lambda: session.logout(),
    )
    session = SessionContext(api, FileSessionStorage(settings.session_path))
    store = EntityStore()
    session.add_logout_hook(store.clear)

    coordinator = MutationCoordinator(api, store, confirm=confirm, notify=notify)

    state = AppState(
        settings=settings,
        api=api,
        session=session,
        store=store,
        coordinator=coordinator,
    )

    identity = session.restore()
    if identity is None:
        logger.info("No saved session; use /login, /register or /join.")
    return state
