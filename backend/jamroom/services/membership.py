import logging
from typing import Optional

from jamroom.models.messages import SyncState, UsersUpdated
from jamroom.models.room import Member, Room
from jamroom.services.clock import estimate_position
from jamroom.services.gateway import Gateway
from jamroom.services.registry import RoomRegistry

logger = logging.getLogger(__name__)


def default_display_name(connection_id: str) -> str:
    return f"User {connection_id[:4]}"


class MembershipTracker:
    def __init__(self, registry: RoomRegistry, gateway: Gateway):
        self.registry = registry
        self.gateway = gateway

    async def join(self, code: str, connection_id: str, display_name: Optional[str] = None) -> Room:
        """
        Add a connection to a room, creating the room if needed.

        Joining again with the same connection id inserts no duplicate. A
        connection belongs to one room at a time, so joining a different room
        leaves the previous one first.
        """
        previous = self.registry.room_code_of(connection_id)
        if previous is not None and previous != code:
            await self.leave(connection_id)

        room = self.registry.get_or_create(code)
        if not room.has_member(connection_id):
            name = display_name or default_display_name(connection_id)
            room.members.append(Member(connection_id=connection_id, display_name=name))
            logger.info(f"{name} ({connection_id}) joined room {code}")
        self.registry.bind(connection_id, code)

        await self.gateway.enter_room(connection_id, code)
        await self.gateway.broadcast_to_room(code, UsersUpdated(users=room.members))
        await self.send_snapshot(room, connection_id)
        return room

    async def send_snapshot(self, room: Room, connection_id: str):
        now = self.registry.clock()
        await self.gateway.send_to(connection_id, SyncState(
            track=room.current,
            is_playing=room.is_playing,
            timestamp=estimate_position(room, now),
            queue=room.queue,
            users=room.members,
            server_time=now,
        ))

    async def leave(self, connection_id: str) -> Optional[Room]:
        """Remove a connection from its room. Safe to call more than once."""
        code = self.registry.unbind(connection_id)
        room = self.registry.get(code)
        if room is None:
            return None

        room.members = [m for m in room.members if m.connection_id != connection_id]
        logger.info(f"Removed {connection_id} from room {code}")
        await self.gateway.leave_room(connection_id, code)

        if not room.members:
            self.registry.remove(code)
            return None

        await self.gateway.broadcast_to_room(code, UsersUpdated(users=room.members))
        return room
