from fastapi import APIRouter, Body, Depends, HTTPException
from typing import List

from app.api.deps import get_queue_service
from app.core.exceptions import UnknownEntry
from app.schemas.queue import (
    ClinicQueueResponse,
    QueueJoinRequest,
    QueueSnapshot,
    QueueUpdate,
    ServiceDurationUpdate,
    TravelEstimateRequest,
    TravelInfo,
    UpdateResult,
)
from app.services.estimation_service import travel_info_between
from app.services.queue_service import QueueService

router = APIRouter()

# Rejections that are reported as HTTP errors; stale updates are not
REASON_STATUS_CODES = {
    "unknown_entry": 404,
    "invalid_transition": 409,
    "terminal_entry": 409,
    "malformed_patch": 422,
}

def raise_for_result(result: UpdateResult) -> UpdateResult:
    status_code = REASON_STATUS_CODES.get(result.reason)
    if not result.applied and status_code:
        raise HTTPException(
            status_code=status_code,
            detail={"reason": result.reason, "message": result.message},
        )
    return result

@router.post("/join", response_model=QueueSnapshot)
async def join_queue(
    request: QueueJoinRequest,
    service: QueueService = Depends(get_queue_service)
):
    return await service.join_queue(request)

@router.patch("/updates", response_model=UpdateResult)
async def apply_update(
    patch: dict = Body(...),
    service: QueueService = Depends(get_queue_service)
):
    # Validation happens in the service so malformed patches get the same reporting
    result = await service.apply_update(patch)
    return raise_for_result(result)

@router.post("/{entry_id}/arrived", response_model=UpdateResult)
async def mark_arrived(
    entry_id: str,
    service: QueueService = Depends(get_queue_service)
):
    return raise_for_result(await service.mark_arrived(entry_id))

@router.delete("/{entry_id}", response_model=UpdateResult)
async def leave_queue(
    entry_id: str,
    service: QueueService = Depends(get_queue_service)
):
    return raise_for_result(await service.leave_queue(entry_id))

@router.get("/{entry_id}", response_model=QueueSnapshot)
async def read_entry(
    entry_id: str,
    service: QueueService = Depends(get_queue_service)
):
    try:
        return service.get_snapshot(entry_id)
    except UnknownEntry as exc:
        raise HTTPException(status_code=404, detail=exc.message)

@router.get("/{entry_id}/history", response_model=List[QueueUpdate])
async def read_entry_history(
    entry_id: str,
    service: QueueService = Depends(get_queue_service)
):
    try:
        return service.get_history(entry_id)
    except UnknownEntry as exc:
        raise HTTPException(status_code=404, detail=exc.message)

@router.get("/clinics/{clinic_id}", response_model=ClinicQueueResponse)
async def read_clinic_queue(
    clinic_id: str,
    service: QueueService = Depends(get_queue_service)
):
    return await service.get_clinic_queue(clinic_id)

@router.put("/clinics/{clinic_id}/service-duration", response_model=List[QueueSnapshot])
async def set_service_duration(
    clinic_id: str,
    request: ServiceDurationUpdate,
    service: QueueService = Depends(get_queue_service)
):
    return await service.set_service_duration(clinic_id, request.minutes)

@router.post("/clinics/{clinic_id}/service-samples", response_model=List[QueueSnapshot])
async def record_service_sample(
    clinic_id: str,
    request: ServiceDurationUpdate,
    service: QueueService = Depends(get_queue_service)
):
    return await service.record_service_sample(clinic_id, request.minutes)

@router.post("/travel-estimate", response_model=TravelInfo)
async def estimate_travel(request: TravelEstimateRequest):
    return travel_info_between(request.origin, request.destination, request.mode)
