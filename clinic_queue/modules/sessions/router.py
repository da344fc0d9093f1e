from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from clinic_queue.core.clock import Clock, get_clock
from clinic_queue.core.config import settings
from clinic_queue.core.db import get_session
from clinic_queue.modules.sessions.schemas import GuestLoginIn, GuestSessionOut
from clinic_queue.modules.sessions.service import GuestSessionService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session), clock: Clock = Depends(get_clock)) -> GuestSessionService:
    return GuestSessionService(session, now=clock)

@router.post("/guest-login")
async def guest_login(
    payload: GuestLoginIn,
    response: Response,
    service: GuestSessionService = Depends(svc),
):
    obj, cookie_value = await service.login(payload)
    response.set_cookie(
        settings.GUEST_COOKIE_NAME,
        cookie_value,
        max_age=settings.GUEST_SESSION_TTL_SECONDS,
        httponly=True,
        secure=settings.ENV == "prod",
        samesite="strict",
        path="/",
    )
    return {"success": True, "data": GuestSessionOut.model_validate(obj).model_dump(by_alias=True, mode="json")}

@router.get("/guest-login")
async def guest_session(
    request: Request,
    service: GuestSessionService = Depends(svc),
):
    cookie_value = request.cookies.get(settings.GUEST_COOKIE_NAME)
    if not cookie_value:
        raise HTTPException(status_code=401, detail="No guest session found")
    obj = await service.current(cookie_value)
    if not obj:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return {"success": True, "data": GuestSessionOut.model_validate(obj).model_dump(by_alias=True, mode="json")}
