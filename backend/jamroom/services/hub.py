import logging
from typing import Any, Optional, Type, TypeVar

from pydantic import ValidationError

from jamroom import config
from jamroom.models.messages import (
    ErrorMessage,
    InboundMessage,
    JoinRoom,
    LeaveRoom,
    Notification,
    PauseTrack,
    PlayTrack,
    RequestTrack,
    SearchQuery,
    SearchResults,
    SeekTrack,
    SkipTrack,
)
from jamroom.models.room import QueuedTrack
from jamroom.services.gateway import Gateway
from jamroom.services.media import Catalog, TrackResolver, TrackUnavailable
from jamroom.services.membership import MembershipTracker
from jamroom.services.playback import PlaybackController
from jamroom.services.queue import TrackQueue
from jamroom.services.registry import RoomRegistry
from jamroom.services.throttle import ConnectionThrottle

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=InboundMessage)


def parse_message(model: Type[M], data: Any) -> Optional[M]:
    if not isinstance(data, dict):
        logger.warning(f"Rejected {model.event}: expected an object, got {type(data).__name__}")
        return None
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Rejected malformed {model.event}: {e.error_count()} error(s)")
        return None


class RoomHub:
    """
    Entry point for every inbound client event.

    Holds the process' room registry and the services operating on it, and
    turns raw socket payloads into validated messages before delegating.
    """

    def __init__(
        self,
        gateway: Gateway,
        resolver: TrackResolver,
        catalog: Optional[Catalog] = None,
        registry: Optional[RoomRegistry] = None,
        search_throttle: Optional[ConnectionThrottle] = None,
        request_throttle: Optional[ConnectionThrottle] = None,
    ):
        self.gateway = gateway
        self.resolver = resolver
        self.catalog = catalog
        self.registry = registry or RoomRegistry()
        self.queue = TrackQueue(gateway)
        self.members = MembershipTracker(self.registry, gateway)
        self.playback = PlaybackController(self.registry, self.queue, resolver, gateway)
        self.search_throttle = search_throttle or ConnectionThrottle(1, config.SEARCH_MIN_INTERVAL)
        self.request_throttle = request_throttle or ConnectionThrottle(
            config.TRACK_REQUEST_LIMIT, config.TRACK_REQUEST_WINDOW
        )

    async def join(self, sid: str, data: Any):
        msg = parse_message(JoinRoom, data)
        if msg is None:
            await self.gateway.send_to(sid, ErrorMessage(message="Invalid join request"))
            return
        await self.members.join(msg.room_code, sid, msg.display_name)

    async def leave(self, sid: str, data: Any = None):
        # leave_room may be emitted without a payload
        msg = parse_message(LeaveRoom, {} if data is None else data)
        if msg is not None:
            await self.members.leave(sid)

    async def disconnect(self, sid: str):
        await self.members.leave(sid)
        self.search_throttle.forget(sid)
        self.request_throttle.forget(sid)

    async def search(self, sid: str, data: Any):
        msg = parse_message(SearchQuery, data)
        if msg is None:
            await self.gateway.send_to(sid, SearchResults())
            return
        if not self.search_throttle.allow(sid):
            logger.warning(f"Search throttled for {sid}")
            await self.gateway.send_to(sid, Notification(message="Searching too fast, slow down"))
            await self.gateway.send_to(sid, SearchResults())
            return
        results = await self.catalog.search(msg.query) if self.catalog else []
        await self.gateway.send_to(sid, SearchResults(results=results))

    async def request_track(self, sid: str, data: Any):
        msg = parse_message(RequestTrack, data)
        if msg is None:
            await self.gateway.send_to(sid, ErrorMessage(message="Invalid track request"))
            return
        if self.registry.get(msg.room_code) is None:
            return
        if not self.request_throttle.allow(sid):
            logger.warning(f"Track request throttled for {sid}")
            await self.gateway.send_to(sid, Notification(message="Too many track requests, try again shortly"))
            return

        try:
            await self.resolver.check_available(msg.locator)
        except TrackUnavailable as e:
            logger.warning(f"Rejected track '{msg.title}' from {sid}: {e}")
            await self.gateway.send_to(sid, ErrorMessage(message=f"Could not add track: {e}"))
            return

        # The room may have emptied while the source was being checked
        room = self.registry.get(msg.room_code)
        if room is None:
            return
        await self.queue.enqueue(room, QueuedTrack(title=msg.title, thumbnail=msg.thumbnail, locator=msg.locator))
        await self.playback.start_if_idle(room)

    async def skip(self, sid: str, data: Any):
        msg = parse_message(SkipTrack, data)
        if msg is not None:
            await self.playback.skip(msg.room_code)

    async def pause(self, sid: str, data: Any):
        msg = parse_message(PauseTrack, data)
        if msg is not None:
            await self.playback.pause(msg.room_code, sid, msg.timestamp)

    async def resume(self, sid: str, data: Any):
        msg = parse_message(PlayTrack, data)
        if msg is not None:
            await self.playback.resume(msg.room_code, sid, msg.timestamp)

    async def seek(self, sid: str, data: Any):
        msg = parse_message(SeekTrack, data)
        if msg is not None:
            await self.playback.seek(msg.room_code, sid, msg.timestamp)

    async def close(self):
        await self.playback.close()
