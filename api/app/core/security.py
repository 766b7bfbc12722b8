from fastapi import Depends, Header, HTTPException, status

from app.core.auth import Principal, parse_user_header
from app.core.config import Settings, get_settings


async def get_principal(
    settings: Settings = Depends(get_settings),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> Principal:
    user_id = parse_user_header(x_user_id)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"requests require a {settings.user_id_header} header",
        )
    return Principal(user_id=user_id)
