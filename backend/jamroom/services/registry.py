import itertools
import logging
import time
from typing import Callable, Dict, Optional

from jamroom.models.room import Room

logger = logging.getLogger(__name__)


class RoomRegistry:
    """
    Owns every live room for the lifetime of the process.

    Rooms are created on first join and removed as soon as the last member
    leaves. A connection -> room code index is kept next to the rooms so a
    disconnect does not have to scan all of them.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._rooms: Dict[str, Room] = {}
        self._connections: Dict[str, str] = {}
        self._tokens = itertools.count(1)

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: str) -> bool:
        return code in self._rooms

    def get(self, code: Optional[str]) -> Optional[Room]:
        if not code:
            return None
        return self._rooms.get(code)

    def get_or_create(self, code: str) -> Room:
        room = self._rooms.get(code)
        if room is None:
            now = self.clock()
            room = Room(code=code, last_updated=now, created_at=now)
            self._rooms[code] = room
            logger.info(f"Room {code} created")
        return room

    def remove(self, code: str):
        room = self._rooms.pop(code, None)
        if room is None:
            return
        # Drop index entries that still point at this room
        for connection_id in [m.connection_id for m in room.members]:
            if self._connections.get(connection_id) == code:
                del self._connections[connection_id]
        logger.info(f"Room {code} removed")

    def bind(self, connection_id: str, code: str):
        self._connections[connection_id] = code

    def unbind(self, connection_id: str) -> Optional[str]:
        return self._connections.pop(connection_id, None)

    def room_code_of(self, connection_id: str) -> Optional[str]:
        return self._connections.get(connection_id)

    def next_token(self) -> int:
        """Registry-wide advance token, never reused even across recreated rooms."""
        return next(self._tokens)
