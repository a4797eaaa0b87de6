import hmac

from fastapi import Depends, Header, HTTPException, status

from jobledger.core.config import Settings, get_settings


async def require_admin_api_key(
    settings: Settings = Depends(get_settings),
    api_key: str | None = Header(default=None, alias="Api-Key"),
) -> None:
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="admin API key is not configured",
        )

    if not api_key or not hmac.compare_digest(api_key.encode("utf-8"), settings.admin_api_key.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
