from fastapi import APIRouter, Depends, status

from app.api.errors import to_http_exception
from app.core.auth import Principal
from app.core.security import get_principal
from app.schemas.gigs import Application, ApplyRequest, GigOut
from app.services.errors import MarketplaceError
from app.services.gigs import GigService, get_gig_service, to_gig_out

router = APIRouter()


@router.post("/{gig_id}/applications", response_model=Application, status_code=status.HTTP_201_CREATED)
async def apply_to_gig(
    gig_id: str,
    payload: ApplyRequest,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> Application:
    try:
        return await service.apply(gig_id, principal.user_id, payload.model_dump(exclude_unset=True))
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{gig_id}/applications/{application_id}/accept", response_model=GigOut)
async def accept_application(
    gig_id: str,
    application_id: str,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> GigOut:
    try:
        gig, _ = await service.accept(gig_id, application_id, principal.user_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return to_gig_out(gig)


@router.post("/{gig_id}/applications/{application_id}/reject", response_model=Application)
async def reject_application(
    gig_id: str,
    application_id: str,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> Application:
    try:
        return await service.reject(gig_id, application_id, principal.user_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{gig_id}/applications/{application_id}/withdraw", response_model=Application)
async def withdraw_application(
    gig_id: str,
    application_id: str,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> Application:
    try:
        return await service.withdraw(gig_id, application_id, principal.user_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
