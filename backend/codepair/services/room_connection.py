from __future__ import annotations

import asyncio
import enum
import logging
import secrets
from typing import Any

from codepair.services.room_broker import Outbox, RoomBroker
from codepair.services.room_reclaimer import RoomReclaimer
from codepair.services.room_store import RoomStore

logger = logging.getLogger(__name__)

ROOM_NOT_FOUND_MESSAGE = "Room does not exist"


class ConnectionState(enum.StrEnum):
    unbound = "unbound"
    bound = "bound"
    closed = "closed"


class RoomConnection:
    """Binds one realtime connection to at most one room.

    Handlers never await, so each inbound event is applied to the store and
    fanned out through the broker as one uninterrupted step.
    """

    def __init__(
        self,
        store: RoomStore,
        broker: RoomBroker,
        reclaimer: RoomReclaimer,
        *,
        queue_size: int = 256,
        connection_id: str | None = None,
    ) -> None:
        self.id = connection_id or secrets.token_urlsafe(12)
        self.outbox: Outbox = asyncio.Queue(maxsize=queue_size)
        self.room_id: str | None = None
        self.state = ConnectionState.unbound
        self._store = store
        self._broker = broker
        self._reclaimer = reclaimer

    def send(self, payload: dict[str, Any]) -> None:
        self._broker.send(self.outbox, payload)

    def join(self, room_id: str) -> bool:
        if self.state == ConnectionState.closed:
            return False

        room = self._store.get(room_id)
        if room is None:
            logger.info("Connection %s tried to join missing room %s", self.id, room_id)
            self.send({"type": "room-error", "message": ROOM_NOT_FOUND_MESSAGE})
            return False

        if self.room_id == room_id and room.has_participant(self.id):
            self.send({"type": "load-code", "content": room.content})
            self.send({"type": "room-info", "participantCount": room.participant_count})
            return True

        if self.room_id is not None:
            self._leave_current_room()

        self._broker.join(room_id, self.id, self.outbox)
        self._store.add_participant(room, self.id)
        self.room_id = room_id
        self.state = ConnectionState.bound
        logger.info(
            "Connection %s joined room %s (%d participants)",
            self.id,
            room_id,
            room.participant_count,
        )

        self.send({"type": "load-code", "content": room.content})
        self._broker.publish(
            room_id,
            {"type": "user-joined", "participantCount": room.participant_count},
            exclude_connection_id=self.id,
        )
        self.send({"type": "room-info", "participantCount": room.participant_count})
        return True

    def change_content(self, room_id: str, content: str) -> bool:
        room = self._store.get(room_id)
        if room is None:
            logger.debug("Dropping code-change for missing room %s", room_id)
            return False

        room.content = content
        self._broker.publish(
            room_id,
            {"type": "code-update", "content": content},
            exclude_connection_id=self.id,
        )
        return True

    def relay_cursor(self, room_id: str, position: Any) -> None:
        if self._store.get(room_id) is None:
            logger.debug("Dropping cursor-change for missing room %s", room_id)
            return
        self._broker.publish(
            room_id,
            {"type": "cursor-update", "senderId": self.id, "position": position},
            exclude_connection_id=self.id,
        )

    def relay_execution(self, room_id: str, timestamp: Any) -> None:
        if self._store.get(room_id) is None:
            logger.debug("Dropping code-executed for missing room %s", room_id)
            return
        self._broker.publish(
            room_id,
            {"type": "execution-notification", "senderId": self.id, "timestamp": timestamp},
            exclude_connection_id=self.id,
        )

    def disconnect(self) -> None:
        if self.state == ConnectionState.closed:
            return
        if self.room_id is not None:
            self._leave_current_room()
        self.state = ConnectionState.closed

    def _leave_current_room(self) -> None:
        room_id = self.room_id
        if room_id is None:
            return

        self._broker.leave(room_id, self.id)
        self.room_id = None
        self.state = ConnectionState.unbound

        room = self._store.get(room_id)
        if room is None:
            return

        self._store.remove_participant(room, self.id)
        remaining = room.participant_count
        logger.info("Connection %s left room %s (%d participants)", self.id, room_id, remaining)
        self._broker.publish(room_id, {"type": "user-left", "participantCount": remaining})
        if remaining == 0:
            self._reclaimer.arm(room_id)
