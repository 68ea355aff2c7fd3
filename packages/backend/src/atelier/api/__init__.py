"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. Health stays open so load balancers can probe it.
"""

from fastapi import APIRouter, Depends

from atelier.api.data_events import router as data_events_router
from atelier.api.health import router as health_router
from atelier.api.messages import router as messages_router
from atelier.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes, no auth required
api_router.include_router(health_router, tags=["health"])

# Protected routes require a valid JWT (header or ?token=)
api_router.include_router(data_events_router, tags=["data-events"], dependencies=_auth)
api_router.include_router(messages_router, tags=["messages"], dependencies=_auth)
