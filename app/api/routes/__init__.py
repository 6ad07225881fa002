from fastapi import APIRouter

from app.api.routes import admin, auth, health, requests

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(requests.router, prefix="/requests", tags=["requests"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
