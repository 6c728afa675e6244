"""API v1 router aggregating all route modules."""

from fastapi import APIRouter

from admissions.api.v1.routes import journal, panels, reservations

api_router = APIRouter()

api_router.include_router(reservations.router)
api_router.include_router(panels.router)
api_router.include_router(journal.router)
