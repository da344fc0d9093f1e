from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.core.clock import Clock, get_clock
from clinic_queue.core.db import get_session
from clinic_queue.core.security import Principal, require_roles, STAFF_ROLES
from clinic_queue.modules.queue.schemas import (
    QueueAction, StartRequest, CompleteRequest, UpdateNotesRequest, UpdatePriorityRequest,
    MarkEmergencyRequest,
)
from clinic_queue.modules.queue.service import QueueService
from clinic_queue.modules.visits.schemas import VisitOut
from clinic_queue.modules.visits.service import VisitService, snapshot
from clinic_queue.platform.adapters.names_principal import PrincipalNameResolver

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> QueueService:
    return QueueService(session, now=clock)

def visits_svc(session: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> VisitService:
    return VisitService(session, now=clock)

@router.get("")
async def list_queue(
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    page: int = Query(default=1, ge=1),
    principal: Principal = Depends(require_roles(*STAFF_ROLES)),
    service: QueueService = Depends(svc),
):
    return {"success": True, "data": await service.listing(status=status, page=page, limit=limit)}

@router.patch("")
async def act_on_visit(
    payload: QueueAction = Body(...),
    principal: Principal = Depends(require_roles(*STAFF_ROLES)),
    service: VisitService = Depends(visits_svc),
):
    if isinstance(payload, StartRequest):
        actor = str(principal.user_id)
        obj = await service.start(payload.visit_id, actor, PrincipalNameResolver(principal), notes=payload.notes)
    elif isinstance(payload, CompleteRequest):
        obj = await service.complete(payload.visit_id, notes=payload.notes)
    elif isinstance(payload, UpdateNotesRequest):
        obj = await service.update_notes(payload.visit_id, payload.notes)
    elif isinstance(payload, UpdatePriorityRequest):
        obj = await service.update_priority(payload.visit_id, payload.priority)
    return {
        "success": True,
        "data": {"visit": VisitOut.model_validate(obj).model_dump(by_alias=True, mode="json")},
        "message": f"Visit {payload.action} successful",
    }

@router.get("/position")
async def queue_position(
    student_id: str = Query(..., alias="studentId", min_length=1),
    service: QueueService = Depends(svc),
):
    return await service.position(student_id)

@router.get("/emergency")
async def emergency_alerts(
    principal: Principal = Depends(require_roles(*STAFF_ROLES)),
    service: QueueService = Depends(svc),
):
    return {"success": True, "data": await service.emergencies()}

@router.post("/emergency")
async def mark_emergency(
    payload: MarkEmergencyRequest,
    service: VisitService = Depends(visits_svc),
):
    obj = await service.mark_emergency(payload.student_id)
    return {
        "success": True,
        "message": "Case marked as emergency successfully",
        "visit": snapshot(obj),
    }
