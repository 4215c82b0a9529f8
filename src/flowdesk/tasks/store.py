# src/flowdesk/tasks/store.py

from __future__ import annotations

import dataclasses
import itertools
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .models import Organization, Project, Task, User

logger = logging.getLogger(__name__)

PROJECTS = "projects"
TASKS = "tasks"
MEMBERS = "members"
ORGANIZATIONS = "organizations"

COLLECTIONS: tuple[str, ...] = (PROJECTS, TASKS, MEMBERS, ORGANIZATIONS)

Entity = Project | Task | User | Organization


class PendingKind(str, Enum):
    PATCH = "patch"
    REMOVAL = "removal"


@dataclass(slots=True, frozen=True)
class PendingMutation:
    """
    Marker for a locally applied change the service has not confirmed yet.

    `previous` is the record as it was before the change; `applied` holds the
    optimistic field values (patches only) so a rollback can tell whether a
    newer write has already replaced them.
    """

    token: int
    kind: PendingKind
    collection: str
    entity_id: str
    previous: Any
    position: int
    applied: dict[str, Any]


class EntityStore:
    """
    In-memory mirror of the last server-confirmed state.

    - one ordered mapping per collection (fetch order is preserved)
    - records are frozen dataclasses; partial updates build a new record
      with a shallow field merge
    - each collection tracks fetch sequence numbers so that a response for an
      older request never overwrites a newer one
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {name: {} for name in COLLECTIONS}
        self._issued: dict[str, int] = {name: 0 for name in COLLECTIONS}
        self._applied: dict[str, int] = {name: 0 for name in COLLECTIONS}
        self._pending: dict[int, PendingMutation] = {}
        self._tokens = itertools.count(1)

    # ---- low-level helpers ----

    def _bucket(self, collection: str) -> dict[str, Any]:
        try:
            return self._data[collection]
        except KeyError:
            raise KeyError(f"unknown collection: {collection}") from None

    @staticmethod
    def _insert_at(bucket: dict[str, Any], position: int, entity_id: str, entity: Any) -> None:
        items = list(bucket.items())
        position = max(0, min(position, len(items)))
        items.insert(position, (entity_id, entity))
        bucket.clear()
        bucket.update(items)

    # ---- fetch sequencing ----

    def begin_fetch(self, collection: str) -> int:
        """Allocate the sequence number for a new fetch of `collection`."""
        self._bucket(collection)
        self._issued[collection] += 1
        return self._issued[collection]

    def is_stale(self, collection: str, seq: int) -> bool:
        return seq < self._applied[collection]

    # ---- public API ----

    def replace_collection(
        self,
        collection: str,
        items: Iterable[Entity],
        *,
        seq: int | None = None,
    ) -> bool:
        """
        Replace a whole collection with a fresh server snapshot.

        Returns False (and changes nothing) when `seq` belongs to a request
        older than the one whose response was last applied.
        """
        bucket = self._bucket(collection)
        if seq is not None:
            if self.is_stale(collection, seq):
                logger.info(
                    "Discarding stale %s response seq=%s (applied=%s)",
                    collection,
                    seq,
                    self._applied[collection],
                )
                return False
            self._applied[collection] = seq

        bucket.clear()
        for item in items:
            bucket[item.id] = item
        logger.debug("Replaced %s: %d records (seq=%s)", collection, len(bucket), seq)
        return True

    def upsert_one(self, collection: str, entity: Entity) -> None:
        self._bucket(collection)[entity.id] = entity

    def patch_one(self, collection: str, entity_id: str, **fields: Any) -> Any:
        """Shallow field merge into an existing record. Returns the new record."""
        bucket = self._bucket(collection)
        current = bucket.get(entity_id)
        if current is None:
            raise KeyError(f"{collection}/{entity_id} is not loaded")
        updated = dataclasses.replace(current, **fields)
        bucket[entity_id] = updated
        logger.debug("Patched %s/%s fields=%s", collection, entity_id, sorted(fields))
        return updated

    def remove_one(self, collection: str, entity_id: str) -> Any | None:
        return self._bucket(collection).pop(entity_id, None)

    def get(self, collection: str, entity_id: str) -> Any | None:
        return self._bucket(collection).get(entity_id)

    def snapshot(self, collection: str) -> tuple[Any, ...]:
        return tuple(self._bucket(collection).values())

    def projects(self) -> tuple[Project, ...]:
        return self.snapshot(PROJECTS)

    def tasks(self) -> tuple[Task, ...]:
        return self.snapshot(TASKS)

    def members(self) -> tuple[User, ...]:
        return self.snapshot(MEMBERS)

    def clear(self) -> None:
        for name in COLLECTIONS:
            self._data[name].clear()
        self._pending.clear()

    # ---- optimistic updates ----

    def apply_optimistic_patch(self, collection: str, entity_id: str, **fields: Any) -> PendingMutation:
        bucket = self._bucket(collection)
        previous = bucket.get(entity_id)
        if previous is None:
            raise KeyError(f"{collection}/{entity_id} is not loaded")
        position = list(bucket).index(entity_id)
        self.patch_one(collection, entity_id, **fields)
        pending = PendingMutation(
            token=next(self._tokens),
            kind=PendingKind.PATCH,
            collection=collection,
            entity_id=entity_id,
            previous=previous,
            position=position,
            applied=dict(fields),
        )
        self._pending[pending.token] = pending
        return pending

    def apply_optimistic_removal(self, collection: str, entity_id: str) -> PendingMutation | None:
        bucket = self._bucket(collection)
        if entity_id not in bucket:
            return None
        position = list(bucket).index(entity_id)
        previous = bucket.pop(entity_id)
        pending = PendingMutation(
            token=next(self._tokens),
            kind=PendingKind.REMOVAL,
            collection=collection,
            entity_id=entity_id,
            previous=previous,
            position=position,
            applied={},
        )
        self._pending[pending.token] = pending
        return pending

    def apply_optimistic_project_removal(self, project_id: str) -> list[PendingMutation]:
        """
        Drop a project and every loaded task that belongs to it.

        Mirrors the service-side cascade until the next refetch arrives.
        Roll the returned markers back in reverse order to restore positions.
        """
        out: list[PendingMutation] = []
        project_pending = self.apply_optimistic_removal(PROJECTS, project_id)
        if project_pending is not None:
            out.append(project_pending)
        doomed = [t.id for t in self.tasks() if t.project_id == project_id]
        for task_id in doomed:
            task_pending = self.apply_optimistic_removal(TASKS, task_id)
            if task_pending is not None:
                out.append(task_pending)
        return out

    def confirm(self, pending: PendingMutation) -> None:
        self._pending.pop(pending.token, None)

    def rollback(self, pending: PendingMutation) -> bool:
        """
        Undo an unconfirmed optimistic change.

        Patches: only fields still holding the optimistic value are restored,
        so a refetch that landed in between wins. Removals: the record is
        reinserted at its old position unless a refetch already brought it back.
        Returns True if anything was restored.
        """
        if self._pending.pop(pending.token, None) is None:
            return False

        bucket = self._bucket(pending.collection)

        if pending.kind is PendingKind.REMOVAL:
            if pending.entity_id in bucket:
                return False
            self._insert_at(bucket, pending.position, pending.entity_id, pending.previous)
            logger.info("Rolled back removal of %s/%s", pending.collection, pending.entity_id)
            return True

        current = bucket.get(pending.entity_id)
        if current is None:
            return False
        restore = {
            name: getattr(pending.previous, name)
            for name, value in pending.applied.items()
            if getattr(current, name) == value
        }
        if not restore:
            return False
        bucket[pending.entity_id] = dataclasses.replace(current, **restore)
        logger.info(
            "Rolled back %s/%s fields=%s",
            pending.collection,
            pending.entity_id,
            sorted(restore),
        )
        return True

    def pending(self) -> list[PendingMutation]:
        return list(self._pending.values())
