from fastapi import APIRouter
from clinic_queue.modules.checkin.router import router as checkin_router
from clinic_queue.modules.queue.router import router as queue_router
from clinic_queue.modules.visits.router import router as visits_router
from clinic_queue.modules.sessions.router import router as sessions_router

api_router = APIRouter()
api_router.include_router(checkin_router, tags=["check-in"])
api_router.include_router(queue_router, prefix="/queue", tags=["queue"])
api_router.include_router(visits_router, prefix="/visits", tags=["visits"])
api_router.include_router(sessions_router, tags=["guest"])
# check-in and guest routers carry their own paths (/check-in, /guest-login)

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
