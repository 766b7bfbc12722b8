from fastapi import APIRouter

from app.api.routes import applications, gigs, health, maintenance, me, search

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(gigs.router, prefix="/gigs", tags=["gigs"])
api_router.include_router(applications.router, prefix="/gigs", tags=["applications"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
api_router.include_router(me.router, prefix="/me", tags=["me"])
api_router.include_router(maintenance.router, prefix="/maintenance", tags=["maintenance"])
