from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.core.clock import Clock, get_clock
from clinic_queue.core.config import settings
from clinic_queue.core.db import get_session
from clinic_queue.core.security import Principal, get_optional_principal
from clinic_queue.modules.checkin.schemas import CheckInIn
from clinic_queue.modules.checkin.service import CheckInService
from clinic_queue.modules.sessions.service import GuestSessionService, resolve_identity

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> CheckInService:
    return CheckInService(session, now=clock)

def guests(session: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> GuestSessionService:
    return GuestSessionService(session, now=clock)

@router.post("/check-in")
async def check_in(
    payload: CheckInIn,
    request: Request,
    principal: Principal | None = Depends(get_optional_principal),
    service: CheckInService = Depends(svc),
    guest_sessions: GuestSessionService = Depends(guests),
):
    guest = None
    if principal is None and not (payload.name and payload.student_id):
        guest = await guest_sessions.current(request.cookies.get(settings.GUEST_COOKIE_NAME))
    identity = resolve_identity(
        principal,
        name=payload.name,
        student_id=payload.student_id,
        mobile=payload.mobile,
        class_name=payload.class_name,
        guest=guest,
    )
    out = await service.check_in(payload, identity)
    return {
        "success": True,
        "data": out.model_dump(by_alias=True, mode="json"),
        "message": "Successfully checked in to the clinic queue",
    }

@router.get("/check-in")
async def current_visit(
    request: Request,
    principal: Principal | None = Depends(get_optional_principal),
    service: CheckInService = Depends(svc),
    guest_sessions: GuestSessionService = Depends(guests),
):
    guest = None
    if principal is None:
        guest = await guest_sessions.current(request.cookies.get(settings.GUEST_COOKIE_NAME))
    identity = resolve_identity(principal, guest=guest)
    if identity is None:
        raise HTTPException(status_code=401, detail="No valid session found")
    data = await service.current_visit(identity)
    if data is None:
        return {"success": True, "data": None, "message": "No active visit found"}
    return {"success": True, "data": data}
