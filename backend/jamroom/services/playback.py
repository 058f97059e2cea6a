import asyncio
import logging
from typing import Optional, Set

from jamroom.models.messages import (
    NowPlayingChanged,
    PauseRelay,
    PlayRelay,
    SeekRelay,
    TrackError,
)
from jamroom.models.room import NowPlaying, Room
from jamroom.services.gateway import Gateway
from jamroom.services.media import TrackResolver, TrackUnavailable
from jamroom.services.queue import TrackQueue
from jamroom.services.registry import RoomRegistry

logger = logging.getLogger(__name__)


class PlaybackController:
    """
    Transport state machine of a room: Idle, Playing or Paused.

    Playing and Paused both have a current track and differ only in
    ``is_playing``. Advancing to the next track suspends while the resolver
    works; every advance takes a fresh token and only the advance holding the
    room's current token may write its result, so a skip or a room deletion
    during resolution silently discards the stale result.
    """

    def __init__(self, registry: RoomRegistry, queue: TrackQueue, resolver: TrackResolver, gateway: Gateway):
        self.registry = registry
        self.queue = queue
        self.resolver = resolver
        self.gateway = gateway
        self._retries: Set[asyncio.Task] = set()

    def _holds_token(self, code: str, room: Room, token: int) -> bool:
        return self.registry.get(code) is room and room.advance_token == token

    async def start_if_idle(self, room: Room):
        if room.is_idle and room.queue:
            await self.advance(room.code)

    async def advance(self, code: str):
        room = self.registry.get(code)
        if room is None:
            return

        track = self.queue.dequeue_front(room)
        if track is None:
            await self._go_idle(room)
            return

        token = self.registry.next_token()
        room.advance_token = token
        try:
            stream = await self.resolver.resolve(track.locator)
        except Exception as e:
            if not self._holds_token(code, room, token):
                return
            if isinstance(e, TrackUnavailable):
                logger.warning(f"Skipping '{track.title}' in room {code}: {e}")
            else:
                logger.error(f"Error resolving '{track.title}' in room {code}: {e}", exc_info=True)
            await self.gateway.broadcast_to_room(code, TrackError(
                message=f"Could not play '{track.title}', skipping",
                title=track.title,
            ))
            self._schedule_retry(code, token)
            return

        if not self._holds_token(code, room, token):
            logger.info(f"Discarding superseded resolution of '{track.title}' for room {code}")
            return

        now = self.registry.clock()
        room.current = NowPlaying(
            title=track.title,
            thumbnail=track.thumbnail,
            url=stream.url,
            mime_type=stream.mime_type,
        )
        room.is_playing = True
        room.position_seconds = 0.0
        room.last_updated = now
        room.advance_token = None
        logger.info(f"Room {code} now playing '{track.title}'")

        # now_playing first, clients clear their loading state before the queue update
        await self.gateway.broadcast_to_room(code, NowPlayingChanged(
            track=room.current, is_playing=True, timestamp=0.0, server_time=now,
        ))
        await self.queue.broadcast(room)

    async def _go_idle(self, room: Room):
        now = self.registry.clock()
        room.current = None
        room.is_playing = False
        room.position_seconds = 0.0
        room.last_updated = now
        room.advance_token = None
        logger.info(f"Room {room.code} is idle")
        await self.gateway.broadcast_to_room(room.code, NowPlayingChanged(server_time=now))
        await self.queue.broadcast(room)

    def _schedule_retry(self, code: str, token: int):
        # Re-enter through the event loop instead of recursing
        task = asyncio.get_running_loop().create_task(self._retry(code, token))
        self._retries.add(task)
        task.add_done_callback(self._retries.discard)

    async def _retry(self, code: str, token: int):
        room = self.registry.get(code)
        if room is None or room.advance_token != token:
            return
        try:
            await self.advance(code)
        except Exception as e:
            logger.error(f"Error advancing room {code}: {e}", exc_info=True)

    async def skip(self, code: str):
        if self.registry.get(code) is None:
            return
        logger.info(f"Skip requested in room {code}")
        await self.advance(code)

    def _playing_room(self, code: str) -> Optional[Room]:
        room = self.registry.get(code)
        if room is None or room.current is None:
            return None
        return room

    def _set_position(self, room: Room, timestamp: float, is_playing: Optional[bool] = None):
        if is_playing is not None:
            room.is_playing = is_playing
        room.position_seconds = timestamp
        room.last_updated = self.registry.clock()

    async def pause(self, code: str, sender: str, timestamp: float):
        room = self._playing_room(code)
        if room is None:
            return
        self._set_position(room, timestamp, is_playing=False)
        await self.gateway.broadcast_to_room(code, PauseRelay(timestamp=timestamp), exclude=sender)

    async def resume(self, code: str, sender: str, timestamp: float):
        room = self._playing_room(code)
        if room is None:
            return
        self._set_position(room, timestamp, is_playing=True)
        await self.gateway.broadcast_to_room(code, PlayRelay(timestamp=timestamp), exclude=sender)

    async def seek(self, code: str, sender: str, timestamp: float):
        # Seek corrects everyone, the sender included
        room = self._playing_room(code)
        if room is None:
            return
        self._set_position(room, timestamp)
        await self.gateway.broadcast_to_room(code, SeekRelay(timestamp=timestamp))

    async def wait_pending(self):
        """Wait until deferred advances (and the advances they trigger) have run."""
        while self._retries:
            await asyncio.gather(*list(self._retries), return_exceptions=True)

    async def close(self):
        for task in list(self._retries):
            task.cancel()
        await asyncio.gather(*list(self._retries), return_exceptions=True)
