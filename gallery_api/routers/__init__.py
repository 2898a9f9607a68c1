"""
API routers package.
"""
from gallery_api.routers.auth import router as auth_router
from gallery_api.routers.galleries import router as galleries_router
from gallery_api.routers.share import router as share_router
from gallery_api.routers.invitations import router as invitations_router
from gallery_api.routers.analytics import router as analytics_router
from gallery_api.routers.health import router as health_router

__all__ = [
    "auth_router",
    "galleries_router",
    "share_router",
    "invitations_router",
    "analytics_router",
    "health_router",
]
