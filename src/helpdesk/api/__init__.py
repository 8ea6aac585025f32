"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: unlike a router-level `dependencies=[...]` blanket, every
protected handler here declares its own guard chain (identity, id
shape, role, organization) so the order is visible at the handler.
Health and the auth entry points (register/login/refresh) are open.
"""

from fastapi import APIRouter

from helpdesk.api.auth import router as auth_router
from helpdesk.api.companies import router as companies_router
from helpdesk.api.health import router as health_router
from helpdesk.api.tickets import router as tickets_router
from helpdesk.api.users import router as users_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(tickets_router, tags=["tickets", "messages"])
api_router.include_router(users_router, tags=["users"])
api_router.include_router(companies_router, tags=["companies"])
