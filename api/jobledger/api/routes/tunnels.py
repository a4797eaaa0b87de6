from fastapi import APIRouter, Depends, HTTPException, status

from jobledger.core.config import Settings, get_settings
from jobledger.schemas.tunnels import TunnelAccessOut, TunnelAccessRequest
from jobledger.services import tunnels
from jobledger.services.records import coerce_text

router = APIRouter()


@router.post("/get-ngrok-access", response_model=TunnelAccessOut)
async def get_ngrok_access(
    payload: TunnelAccessRequest,
    settings: Settings = Depends(get_settings),
) -> TunnelAccessOut:
    user_id = coerce_text(payload.user_id)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing user_id")

    try:
        credential = await tunnels.create_tunnel_credential(
            api_url=settings.ngrok_api_url,
            api_key=settings.ngrok_api_key,
            user_id=user_id,
            timeout_seconds=settings.ngrok_timeout_seconds,
        )
    except tunnels.TunnelProviderUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except tunnels.TunnelProviderError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    return TunnelAccessOut(token=credential.token, id=credential.id)
