from pydantic import BaseModel
from typing import List, Optional

class QueuedTrack(BaseModel):
    title: str
    thumbnail: Optional[str] = None
    locator: str # Opaque source reference, resolved when the track is dequeued

class NowPlaying(BaseModel):
    title: str
    thumbnail: Optional[str] = None
    url: str # Resolved stream reference
    mime_type: Optional[str] = None

class Member(BaseModel):
    connection_id: str
    display_name: str

class Room(BaseModel):
    code: str
    queue: List[QueuedTrack] = []
    current: Optional[NowPlaying] = None
    is_playing: bool = False
    position_seconds: float = 0.0 # Last known offset, valid as of last_updated
    last_updated: float = 0.0 # Server time when position_seconds was set
    members: List[Member] = []
    # Token of the advance currently allowed to write its result, None when no advance is in flight
    advance_token: Optional[int] = None
    created_at: float = 0.0

    @property
    def is_idle(self) -> bool:
        return self.current is None and self.advance_token is None

    def has_member(self, connection_id: str) -> bool:
        return any(m.connection_id == connection_id for m in self.members)
