from fastapi import APIRouter, Depends, Query

from app.api.errors import to_http_exception
from app.core.auth import Principal
from app.core.security import get_principal
from app.schemas.gigs import ApplicantApplicationPage, ApplicationStatus, GigPage, GigStatus
from app.services.constants import DEFAULT_PAGE_LIMIT
from app.services.errors import MarketplaceError
from app.services.gigs import GigService, get_gig_service

router = APIRouter()


@router.get("/gigs", response_model=GigPage)
async def list_my_gigs(
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
    status: GigStatus | None = Query(default=None),
    page: int = Query(default=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT),
) -> GigPage:
    try:
        return await service.list_posted_gigs(principal.user_id, status=status, page=page, limit=limit)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc


@router.get("/applications", response_model=ApplicantApplicationPage)
async def list_my_applications(
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
    status: ApplicationStatus | None = Query(default=None),
    page: int = Query(default=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT),
) -> ApplicantApplicationPage:
    try:
        return await service.list_applications(principal.user_id, status=status, page=page, limit=limit)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
