"""API routers."""

from citycare.routers.health import router as health_router
from citycare.routers.issues import router as issues_router
from citycare.routers.users import router as users_router

__all__ = ["health_router", "issues_router", "users_router"]
