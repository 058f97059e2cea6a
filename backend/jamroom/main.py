import logging
import time
from contextlib import asynccontextmanager

import socketio
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from jamroom import config
from jamroom.models.messages import ErrorMessage
from jamroom.services.clock import estimate_position
from jamroom.services.gateway import SocketIOGateway
from jamroom.services.hub import RoomHub
from jamroom.services.media import MediaService

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

origins = config.ALLOWED_ORIGINS

sio = socketio.AsyncServer(async_mode='asgi', cors_allowed_origins=origins if origins != ["*"] else "*")

media = MediaService()
hub = RoomHub(SocketIOGateway(sio), resolver=media, catalog=media)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await hub.close()


app = FastAPI(title="jamroom", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

socket_app = socketio.ASGIApp(sio, app)

# REST API
@app.get("/")
async def health():
    return {"status": "ok", "rooms": len(hub.registry)}

@app.get("/api/room/{code}")
async def room_info(code: str):
    room = hub.registry.get(code)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return {
        "code": room.code,
        "users": [m.model_dump() for m in room.members],
        "is_playing": room.is_playing,
        "timestamp": estimate_position(room, time.time()),
        "track": room.current.model_dump() if room.current else None,
        "queue_length": len(room.queue),
    }

# Socket Events
@sio.event
async def connect(sid, environ):
    logger.info(f"Client {sid} connected")

@sio.event
async def disconnect(sid):
    try:
        logger.info(f"Client {sid} disconnected")
        await hub.disconnect(sid)
    except Exception as e:
        logger.error(f"Error in disconnect: {e}", exc_info=True)

@sio.event
async def join_room(sid, data):
    try:
        await hub.join(sid, data)
    except Exception as e:
        logger.error(f"Error in join_room: {e}", exc_info=True)
        await sio.emit("error", ErrorMessage(message="Internal server error during join").payload(), to=sid)

@sio.event
async def leave_room(sid, data=None):
    try:
        await hub.leave(sid, data)
    except Exception as e:
        logger.error(f"Error in leave_room: {e}", exc_info=True)

@sio.event
async def search_query(sid, data):
    try:
        await hub.search(sid, data)
    except Exception as e:
        logger.error(f"Error in search_query: {e}", exc_info=True)

@sio.event
async def request_track(sid, data):
    try:
        await hub.request_track(sid, data)
    except Exception as e:
        logger.error(f"Error in request_track: {e}", exc_info=True)
        await sio.emit("error", ErrorMessage(message="Could not add track").payload(), to=sid)

@sio.event
async def skip_track(sid, data):
    try:
        await hub.skip(sid, data)
    except Exception as e:
        logger.error(f"Error in skip_track: {e}", exc_info=True)

@sio.event
async def pause_track(sid, data):
    try:
        await hub.pause(sid, data)
    except Exception as e:
        logger.error(f"Error in pause_track: {e}", exc_info=True)

@sio.event
async def play_track(sid, data):
    try:
        await hub.resume(sid, data)
    except Exception as e:
        logger.error(f"Error in play_track: {e}", exc_info=True)

@sio.event
async def seek_track(sid, data):
    try:
        await hub.seek(sid, data)
    except Exception as e:
        logger.error(f"Error in seek_track: {e}", exc_info=True)


def run():
    logger.info(f"Starting server on {config.HOST}:{config.PORT}")
    uvicorn.run(socket_app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
