from fastapi import APIRouter, Depends, Query, Response, status

from app.api.errors import to_http_exception
from app.core.auth import Principal
from app.core.security import get_principal
from app.schemas.gigs import GigCreateRequest, GigOut, GigUpdateRequest
from app.services.errors import MarketplaceError
from app.services.gigs import GigService, get_gig_service, to_gig_out

router = APIRouter()


@router.post("", response_model=GigOut, status_code=status.HTTP_201_CREATED)
async def create_gig(
    payload: GigCreateRequest,
    publish: bool = Query(default=True),
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> GigOut:
    try:
        gig = await service.create_gig(principal.user_id, payload.model_dump(), publish=publish)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return to_gig_out(gig)


@router.get("/{gig_id}", response_model=GigOut)
async def get_gig(gig_id: str, service: GigService = Depends(get_gig_service)) -> GigOut:
    try:
        gig = await service.get_gig(gig_id, record_view=True)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return to_gig_out(gig)


@router.patch("/{gig_id}", response_model=GigOut)
async def update_gig(
    gig_id: str,
    payload: GigUpdateRequest,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> GigOut:
    try:
        gig = await service.update_gig(gig_id, principal.user_id, payload.model_dump(exclude_unset=True))
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return to_gig_out(gig)


@router.delete("/{gig_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_gig(
    gig_id: str,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> Response:
    try:
        await service.delete_gig(gig_id, principal.user_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{gig_id}/publish", response_model=GigOut)
async def publish_gig(
    gig_id: str,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> GigOut:
    try:
        gig = await service.publish_gig(gig_id, principal.user_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return to_gig_out(gig)


@router.post("/{gig_id}/start", response_model=GigOut)
async def start_gig(
    gig_id: str,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> GigOut:
    try:
        gig = await service.start_gig(gig_id, principal.user_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return to_gig_out(gig)


@router.post("/{gig_id}/complete", response_model=GigOut)
async def complete_gig(
    gig_id: str,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> GigOut:
    try:
        gig = await service.complete_gig(gig_id, principal.user_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return to_gig_out(gig)


@router.post("/{gig_id}/cancel", response_model=GigOut)
async def cancel_gig(
    gig_id: str,
    principal: Principal = Depends(get_principal),
    service: GigService = Depends(get_gig_service),
) -> GigOut:
    try:
        gig = await service.cancel_gig(gig_id, principal.user_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
    return to_gig_out(gig)
