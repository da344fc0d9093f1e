import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.core.db import get_session
from clinic_queue.core.security import Principal, require_roles, STAFF_ROLES
from clinic_queue.modules.visits.schemas import VisitOut
from clinic_queue.modules.visits.service import VisitService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> VisitService:
    return VisitService(session)

@router.get("/history")
async def visit_history(
    student_id: str = Query(..., alias="studentId", min_length=1),
    limit: int = Query(default=10, ge=1, le=50),
    service: VisitService = Depends(svc),
):
    rows = await service.history(student_id, limit=limit)
    return {"success": True, "data": [VisitOut.model_validate(v).model_dump(by_alias=True, mode="json") for v in rows]}

@router.get("/{visit_id}")
async def get_visit(
    visit_id: uuid.UUID,
    principal: Principal = Depends(require_roles(*STAFF_ROLES)),
    service: VisitService = Depends(svc),
):
    obj = await service.get(visit_id)
    return {"success": True, "data": VisitOut.model_validate(obj).model_dump(by_alias=True, mode="json")}
