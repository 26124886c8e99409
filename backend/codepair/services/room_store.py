from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from codepair.services.code_templates import template_for

logger = logging.getLogger(__name__)


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class Participant:
    connection_id: str
    joined_at: datetime = field(default_factory=_now)


@dataclass(slots=True)
class Room:
    language: str
    content: str
    id: str = field(default_factory=_uuid)
    created_at: datetime = field(default_factory=_now)
    participants: list[Participant] = field(default_factory=list)

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def has_participant(self, connection_id: str) -> bool:
        return any(item.connection_id == connection_id for item in self.participants)


class RoomStore:
    """Process-wide registry of live rooms.

    All methods are synchronous and are only called from the event loop thread,
    so a lookup followed by a mutation is never interleaved with another handler.
    """

    def __init__(self, default_language: str = "javascript") -> None:
        self._rooms: dict[str, Room] = {}
        self._default_language = default_language

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def create(self, language: str | None = None) -> Room:
        room_language = language or self._default_language
        room = Room(language=room_language, content=template_for(room_language))
        self._rooms[room.id] = room
        logger.info("Room %s created (language=%s)", room.id, room.language)
        return room

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def delete(self, room_id: str) -> None:
        if self._rooms.pop(room_id, None) is not None:
            logger.info("Room %s deleted", room_id)

    def add_participant(self, room: Room, connection_id: str) -> bool:
        if room.has_participant(connection_id):
            return False
        room.participants.append(Participant(connection_id=connection_id))
        return True

    def remove_participant(self, room: Room, connection_id: str) -> bool:
        remaining = [item for item in room.participants if item.connection_id != connection_id]
        removed = len(remaining) != len(room.participants)
        room.participants = remaining
        return removed
