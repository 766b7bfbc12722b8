from fastapi import APIRouter, Depends, Query

from app.api.errors import to_http_exception
from app.core.config import Settings, get_settings
from app.schemas.gigs import ExpireSweepOut
from app.services.errors import MarketplaceError
from app.services.gigs import GigService, get_gig_service

router = APIRouter()


@router.post("/expire-gigs", response_model=ExpireSweepOut)
async def expire_gigs(
    service: GigService = Depends(get_gig_service),
    settings: Settings = Depends(get_settings),
    limit: int | None = Query(default=None, ge=1, le=5000),
) -> ExpireSweepOut:
    try:
        expired = await service.expire_due_gigs(limit=limit or settings.expiry_sweep_batch_size)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return ExpireSweepOut(expired=expired)
