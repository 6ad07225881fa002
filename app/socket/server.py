import socketio

from app.core.config import get_settings
from app.socket.events import register_socket_events
from app.socket.manager import RealtimeBroadcaster

settings = get_settings()

socket_cors_origins = list(settings.cors_origins)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if settings.DEBUG else socket_cors_origins,
    logger=False,
    engineio_logger=False,
)

register_socket_events(sio)

broadcaster = RealtimeBroadcaster(sio, namespace=settings.REALTIME_NAMESPACE)


def get_broadcaster() -> RealtimeBroadcaster:
    return broadcaster
