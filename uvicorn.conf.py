import uvicorn

from app.core.config import get_settings

settings = get_settings()

host = settings.BACKEND_HOST
port = settings.BACKEND_PORT
log_level = "debug" if settings.DEBUG else "info"
# Rate limiting is per process, so production runs a single worker behind the proxy.
workers = 1


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        log_level=log_level,
        workers=workers,
        reload=settings.DEBUG,
        proxy_headers=True,
        forwarded_allow_ips=settings.FORWARDED_ALLOW_IPS,
    )
