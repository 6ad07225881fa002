import logging
from collections import defaultdict, deque
from threading import Lock
from time import monotonic

from fastapi import Request

from app.core.config import get_settings
from app.core.exceptions import RateLimited

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """Per-key hit counter over a trailing time window.

    State is process-local; with several uvicorn workers each worker keeps
    its own window.
    """

    def __init__(self, limit: int, window_seconds: float, clock=monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def hit(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            hits = self._hits[key]
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.limit:
                return False
            hits.append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


settings = get_settings()
request_creation_limiter = SlidingWindowLimiter(
    limit=settings.REQUEST_CREATE_RATE_LIMIT,
    window_seconds=settings.REQUEST_CREATE_RATE_WINDOW_SECONDS,
)


def client_ip(request: Request) -> str:
    # uvicorn resolves X-Forwarded-For from FORWARDED_ALLOW_IPS proxies.
    return request.client.host if request.client else "unknown"


def limit_request_creation(request: Request) -> None:
    ip = client_ip(request)
    if not request_creation_limiter.hit(ip):
        logger.warning("request.create rate limited ip=%s", ip)
        raise RateLimited()
