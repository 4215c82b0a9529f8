# src/flowdesk/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..tasks.coordinator import MutationCoordinator
from ..tasks.store import EntityStore
from ..tasks.views import TaskBoardView
from .ports import TrackerApi
from .session import SessionContext


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    api: TrackerApi
    session: SessionContext
    store: EntityStore
    coordinator: MutationCoordinator

    # The board keeps its filters between commands.
    board: TaskBoardView = field(init=False)

    def __post_init__(self) -> None:
        self.board = TaskBoardView(self.coordinator)
