from __future__ import annotations

import asyncio
import logging

from codepair.services.room_store import RoomStore

logger = logging.getLogger(__name__)


class RoomReclaimer:
    """Deletes rooms that are still empty once a grace period has elapsed.

    Each arm is independent and is never cancelled by a rejoin; the check at
    fire time decides whether the room goes away.
    """

    def __init__(self, store: RoomStore, delay_seconds: float) -> None:
        self._store = store
        self._delay_seconds = delay_seconds
        self._handles: set[asyncio.TimerHandle] = set()

    @property
    def delay_seconds(self) -> float:
        return self._delay_seconds

    @property
    def pending(self) -> int:
        return len(self._handles)

    def arm(self, room_id: str) -> None:
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def _run() -> None:
            if handle is not None:
                self._handles.discard(handle)
            self.fire(room_id)

        handle = loop.call_later(self._delay_seconds, _run)
        self._handles.add(handle)
        logger.info("Room %s is empty; reclaiming in %.1fs unless rejoined", room_id, self._delay_seconds)

    def fire(self, room_id: str) -> bool:
        room = self._store.get(room_id)
        if room is None or room.participant_count != 0:
            logger.debug("Reclaim check for room %s skipped", room_id)
            return False
        self._store.delete(room_id)
        logger.info("Room %s reclaimed after %.1fs idle", room_id, self._delay_seconds)
        return True

    def close(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
