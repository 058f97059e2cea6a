"""Socket event contracts.

Every inbound and outbound message is a pydantic model bound to exactly one
Socket.IO event name. Inbound payloads are validated at the boundary and
rejected if malformed; outbound payloads are produced with ``payload()``.
"""

from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from jamroom.models.room import Member, NowPlaying, QueuedTrack


class InboundMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    event: ClassVar[str]


class RoomRequest(InboundMessage):
    room_code: str = Field(min_length=1)


class JoinRoom(RoomRequest):
    event = "join_room"

    display_name: Optional[str] = None


class LeaveRoom(InboundMessage):
    event = "leave_room"


class SearchQuery(InboundMessage):
    event = "search_query"

    query: str = Field(min_length=1)


class RequestTrack(RoomRequest):
    event = "request_track"

    locator: str = Field(min_length=1)
    title: str = "Unknown Track"
    thumbnail: Optional[str] = None


class SkipTrack(RoomRequest):
    event = "skip_track"


class TransportRequest(RoomRequest):
    timestamp: float = Field(ge=0)


class PauseTrack(TransportRequest):
    event = "pause_track"


class PlayTrack(TransportRequest):
    event = "play_track"


class SeekTrack(TransportRequest):
    event = "seek_track"


class OutboundMessage(BaseModel):
    event: ClassVar[str]

    def payload(self) -> dict:
        return self.model_dump()


class UsersUpdated(OutboundMessage):
    event = "update_users"

    users: List[Member]


class QueueUpdated(OutboundMessage):
    event = "queue_updated"

    queue: List[QueuedTrack]


class NowPlayingChanged(OutboundMessage):
    """Sent on every track advance; ``track`` is None once the room goes idle."""

    event = "now_playing"

    track: Optional[NowPlaying] = None
    is_playing: bool = False
    timestamp: float = 0.0
    server_time: float


class TrackError(OutboundMessage):
    event = "track_error"

    message: str
    title: Optional[str] = None


class PauseRelay(OutboundMessage):
    event = "receive_pause"

    timestamp: float


class PlayRelay(OutboundMessage):
    event = "receive_play"

    timestamp: float


class SeekRelay(OutboundMessage):
    event = "receive_seek"

    timestamp: float


class SyncState(OutboundMessage):
    """One-time snapshot delivered only to a connection that just joined."""

    event = "sync_state"

    track: Optional[NowPlaying] = None
    is_playing: bool
    timestamp: float
    queue: List[QueuedTrack]
    users: List[Member]
    server_time: float


class SearchResult(BaseModel):
    title: str
    id: str
    url: str
    thumbnail: Optional[str] = None


class SearchResults(OutboundMessage):
    event = "search_results"

    results: List[SearchResult] = []


class Notification(OutboundMessage):
    event = "notification"

    message: str


class ErrorMessage(OutboundMessage):
    event = "error"

    message: str
