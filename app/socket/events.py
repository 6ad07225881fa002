import logging

from app.core.config import get_settings
from app.socket.manager import company_room, member_room

settings = get_settings()
logger = logging.getLogger(__name__)


def _room_from_payload(payload, builder) -> str | None:
    if isinstance(payload, dict):
        value = payload.get("id")
    else:
        value = payload
    value = str(value or "").strip()
    return builder(value) if value else None


def register_socket_events(sio):
    @sio.event(namespace=settings.REALTIME_NAMESPACE)
    async def connect(sid, environ, auth=None):
        logger.debug("socket connected sid=%s", sid)

    @sio.event(namespace=settings.REALTIME_NAMESPACE)
    async def disconnect(sid, *args):
        logger.debug("socket disconnected sid=%s", sid)

    @sio.on("join-company", namespace=settings.REALTIME_NAMESPACE)
    async def join_company(sid, payload):
        room = _room_from_payload(payload, company_room)
        if room:
            await sio.enter_room(sid, room, namespace=settings.REALTIME_NAMESPACE)

    @sio.on("join-member", namespace=settings.REALTIME_NAMESPACE)
    async def join_member(sid, payload):
        room = _room_from_payload(payload, member_room)
        if room:
            await sio.enter_room(sid, room, namespace=settings.REALTIME_NAMESPACE)

    @sio.on("leave-room", namespace=settings.REALTIME_NAMESPACE)
    async def leave_room(sid, payload):
        room = (payload or {}).get("room") if isinstance(payload, dict) else None
        if room:
            await sio.leave_room(sid, room, namespace=settings.REALTIME_NAMESPACE)
