import logging
from typing import Any

logger = logging.getLogger(__name__)


def member_room(member_id: str) -> str:
    return f"member-{member_id}"


def company_room(company_id: str) -> str:
    return f"company-{company_id}"


class RealtimeBroadcaster:
    """Fire-and-forget fan-out of lifecycle events to socket.io rooms."""

    def __init__(self, sio, namespace: str):
        self.sio = sio
        self.namespace = namespace

    async def publish(self, event: str, room: str, payload: dict[str, Any]) -> None:
        try:
            await self.sio.emit(event, payload, room=room, namespace=self.namespace)
        except Exception as exc:
            logger.warning("realtime.publish failed event=%s room=%s error=%s", event, room, exc)
