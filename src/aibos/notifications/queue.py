"""Priority queue of admitted notifications awaiting dispatch."""

from __future__ import annotations

from aibos.notifications.models import QueuedNotification


class PriorityQueue:
    """Orders by priority (critical first), then by enqueue order.

    A new item is inserted before the first item of strictly lower priority,
    so items of equal priority are never reordered relative to each other.
    """

    def __init__(self) -> None:
        self._items: list[QueuedNotification] = []

    def enqueue(self, item: QueuedNotification) -> None:
        rank = item.notification.priority.rank
        for index, queued in enumerate(self._items):
            if queued.notification.priority.rank < rank:
                self._items.insert(index, item)
                return
        self._items.append(item)

    def dequeue(self) -> QueuedNotification | None:
        if not self._items:
            return None
        return self._items.pop(0)

    def peek(self) -> QueuedNotification | None:
        return self._items[0] if self._items else None

    def contains(self, notification_id: str) -> bool:
        return any(q.notification.id == notification_id for q in self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
