from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

Outbox = asyncio.Queue[dict[str, Any]]


class RoomBroker:
    """In-memory group addressing for per-room realtime messages.

    Every connection owns exactly one outbound queue; targeted and broadcast
    payloads both land there, so a connection sees messages in the order the
    core produced them.
    """

    def __init__(self) -> None:
        self._groups: dict[str, dict[str, Outbox]] = defaultdict(dict)

    def join(self, room_id: str, connection_id: str, queue: Outbox) -> None:
        self._groups[room_id][connection_id] = queue

    def leave(self, room_id: str, connection_id: str) -> None:
        group = self._groups.get(room_id)
        if group is None:
            return
        group.pop(connection_id, None)
        if not group:
            self._groups.pop(room_id, None)

    def members(self, room_id: str) -> set[str]:
        return set(self._groups.get(room_id, ()))

    def publish(
        self,
        room_id: str,
        payload: dict[str, Any],
        *,
        exclude_connection_id: str | None = None,
    ) -> int:
        group = self._groups.get(room_id, {})
        targets = [
            queue
            for connection_id, queue in group.items()
            if connection_id != exclude_connection_id
        ]
        for queue in targets:
            self.send(queue, payload)
        return len(targets)

    @staticmethod
    def send(queue: Outbox, payload: dict[str, Any]) -> None:
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass

        try:
            queue.put_nowait(payload)
        except asyncio.QueueFull:
            # Drop newest payload only for a saturated consumer.
            pass
