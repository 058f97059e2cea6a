import logging
from typing import Optional

from jamroom.models.messages import QueueUpdated
from jamroom.models.room import QueuedTrack, Room
from jamroom.services.gateway import Gateway

logger = logging.getLogger(__name__)


class TrackQueue:
    """FIFO of pending tracks per room. Insertion order is play order."""

    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    async def enqueue(self, room: Room, track: QueuedTrack):
        room.queue.append(track)
        logger.info(f"Queued '{track.title}' in room {room.code} ({len(room.queue)} pending)")
        await self.broadcast(room)

    def dequeue_front(self, room: Room) -> Optional[QueuedTrack]:
        # No broadcast here, the caller announces the resulting state
        if not room.queue:
            return None
        return room.queue.pop(0)

    async def broadcast(self, room: Room):
        await self.gateway.broadcast_to_room(room.code, QueueUpdated(queue=room.queue))
