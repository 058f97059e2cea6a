import logging
from typing import Optional, Protocol

import socketio

from jamroom.models.messages import OutboundMessage

logger = logging.getLogger(__name__)


class Gateway(Protocol):
    """Real-time transport between connected clients and the room services."""

    async def send_to(self, connection_id: str, message: OutboundMessage) -> None: ...

    async def broadcast_to_room(
        self, code: str, message: OutboundMessage, exclude: Optional[str] = None
    ) -> None: ...

    async def enter_room(self, connection_id: str, code: str) -> None: ...

    async def leave_room(self, connection_id: str, code: str) -> None: ...


class SocketIOGateway:
    def __init__(self, sio: socketio.AsyncServer):
        self.sio = sio

    async def send_to(self, connection_id: str, message: OutboundMessage):
        await self.sio.emit(message.event, message.payload(), to=connection_id)

    async def broadcast_to_room(self, code: str, message: OutboundMessage, exclude: Optional[str] = None):
        await self.sio.emit(message.event, message.payload(), room=code, skip_sid=exclude)

    async def enter_room(self, connection_id: str, code: str):
        await self.sio.enter_room(connection_id, code)

    async def leave_room(self, connection_id: str, code: str):
        await self.sio.leave_room(connection_id, code)
