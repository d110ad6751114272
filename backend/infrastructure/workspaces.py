"""Infrastructure layer for workspace state."""
from __future__ import annotations

import logging
from dataclasses import asdict, replace
from typing import Any, Iterable, Protocol

from backend.domain import ChatLogEntry, ItemStatus, WorkspaceItem, WorkspaceKind, WorkspaceRecord

log = logging.getLogger(__name__)


class WorkspaceRepository(Protocol):
    """State contract for the four workspaces and the shared chat log."""

    def get_record(self, kind: WorkspaceKind) -> WorkspaceRecord: ...

    def get_workspace_overview(self, kind: WorkspaceKind) -> dict[str, object]: ...

    def list_workspaces(self) -> list[dict[str, object]]: ...

    def try_begin(self, kind: WorkspaceKind) -> bool: ...

    def release(self, kind: WorkspaceKind) -> None: ...

    def publish_primary(
        self,
        kind: WorkspaceKind,
        result: dict[str, Any],
        items: Iterable[WorkspaceItem] = (),
        *,
        attachment: str | None = None,
    ) -> int: ...

    def is_current(self, kind: WorkspaceKind, generation: int) -> bool: ...

    def update_item(self, kind: WorkspaceKind, generation: int, key: str, **changes: Any) -> bool: ...

    def set_status_message(self, kind: WorkspaceKind, message: str | None) -> None: ...

    def append_chat(self, entry: ChatLogEntry) -> None: ...

    def list_chat(self) -> list[ChatLogEntry]: ...

    def reset(self) -> None: ...


def serialise_item(item: WorkspaceItem) -> dict[str, object]:
    data = asdict(item)
    data["status"] = item.status.value
    data["subtype"] = item.subtype.value if item.subtype else None
    return data


def serialise_chat(entry: ChatLogEntry) -> dict[str, object]:
    data = asdict(entry)
    data["workspace"] = entry.workspace.value if entry.workspace else None
    return data


class InMemoryWorkspaceRepository:
    """Holds exactly one record per workspace kind, plus the chat log."""

    def __init__(self) -> None:
        self._records: dict[WorkspaceKind, WorkspaceRecord] = {}
        self._chat: list[ChatLogEntry] = []
        self.reset()

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_record(self, kind: WorkspaceKind) -> WorkspaceRecord:
        record = self._records[kind]
        return replace(record, items=dict(record.items))

    def get_workspace_overview(self, kind: WorkspaceKind) -> dict[str, object]:
        record = self._records[kind]
        return {
            "workspace": record.kind.value,
            "in_flight": record.in_flight,
            "generation": record.generation,
            "primary_result": record.primary_result,
            "items": [serialise_item(item) for item in record.items.values()],
            "attachment": record.attachment,
            "status_message": record.status_message,
            "updated_at": record.updated_at,
        }

    def list_workspaces(self) -> list[dict[str, object]]:
        summaries: list[dict[str, object]] = []
        for record in self._records.values():
            by_status: dict[str, int] = {}
            for item in record.items.values():
                by_status[item.status.value] = by_status.get(item.status.value, 0) + 1
            summaries.append(
                {
                    "workspace": record.kind.value,
                    "in_flight": record.in_flight,
                    "generation": record.generation,
                    "has_result": record.primary_result is not None,
                    "items": by_status,
                    "updated_at": record.updated_at,
                }
            )
        return summaries

    def is_current(self, kind: WorkspaceKind, generation: int) -> bool:
        return self._records[kind].generation == generation

    # ------------------------------------------------------------------
    # request lifecycle
    # ------------------------------------------------------------------
    def try_begin(self, kind: WorkspaceKind) -> bool:
        record = self._records[kind]
        if record.in_flight:
            return False
        record.in_flight = True
        record.status_message = None
        record.touch()
        return True

    def release(self, kind: WorkspaceKind) -> None:
        record = self._records[kind]
        record.in_flight = False
        record.touch()

    def publish_primary(
        self,
        kind: WorkspaceKind,
        result: dict[str, Any],
        items: Iterable[WorkspaceItem] = (),
        *,
        attachment: str | None = None,
    ) -> int:
        record = self._records[kind]
        record.generation += 1
        record.primary_result = result
        record.items = {item.key: item for item in items}
        record.attachment = attachment
        record.status_message = None
        record.touch()
        return record.generation

    def update_item(self, kind: WorkspaceKind, generation: int, key: str, **changes: Any) -> bool:
        """Apply ``changes`` to one item if the write still belongs to the live generation."""

        record = self._records[kind]
        if record.generation != generation:
            log.info("discarding stale write to %s/%s (generation %d != %d)", kind.value, key, generation, record.generation)
            return False
        current = record.items.get(key)
        if current is None:
            return False
        if current.status.terminal:
            return False
        items = dict(record.items)
        items[key] = replace(current, **changes)
        record.items = items
        record.touch()
        return True

    def set_status_message(self, kind: WorkspaceKind, message: str | None) -> None:
        record = self._records[kind]
        record.status_message = message
        record.touch()

    # ------------------------------------------------------------------
    # chat log
    # ------------------------------------------------------------------
    def append_chat(self, entry: ChatLogEntry) -> None:
        self._chat.append(entry)

    def list_chat(self) -> list[ChatLogEntry]:
        return list(self._chat)

    def reset(self) -> None:
        self._records = {kind: WorkspaceRecord(kind=kind) for kind in WorkspaceKind}
        self._chat = []


__all__ = [
    "InMemoryWorkspaceRepository",
    "WorkspaceRepository",
    "serialise_chat",
    "serialise_item",
]
