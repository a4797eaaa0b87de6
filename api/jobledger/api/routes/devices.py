from fastapi import APIRouter, Depends, HTTPException, status

from jobledger.schemas.devices import DeviceOut, HeartbeatRequest, SuccessOut
from jobledger.services.records import parse_heartbeat
from jobledger.services.repository import RepositoryValidationError, get_repository

router = APIRouter()


@router.post("/heartbeat", response_model=SuccessOut)
async def heartbeat(payload: HeartbeatRequest, repository=Depends(get_repository)) -> SuccessOut:
    try:
        record = parse_heartbeat(**payload.model_dump())
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    await repository.upsert_device_heartbeat(record)
    return SuccessOut()


@router.get("/devices", response_model=list[DeviceOut])
async def list_devices(repository=Depends(get_repository)) -> list[DeviceOut]:
    rows = await repository.list_active_devices()
    return [DeviceOut(**row) for row in rows]
