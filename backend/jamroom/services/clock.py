from jamroom.models.room import Room


def estimate_position(room: Room, now: float) -> float:
    """
    Where playback should be at ``now``.

    The stored position is only authoritative as of ``room.last_updated``;
    while playing, the elapsed wall-clock time is added on top.
    """
    if room.is_playing:
        return room.position_seconds + (now - room.last_updated)
    return room.position_seconds
