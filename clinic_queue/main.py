import time
import asyncio
import logging
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, InterfaceError

from clinic_queue.core.config import settings
from clinic_queue.core.logging import setup_logging, request_id_ctx
from clinic_queue.core.errors import QueueError, StoreUnavailable
from clinic_queue.core.db import init_models
from clinic_queue.api.router import api_router
from clinic_queue.modules.events.outbox import run_outbox_relay, run_outbox_retention
from clinic_queue.modules.sessions.service import run_guest_session_purge
from clinic_queue.platform.provider_registry import registry


setup_logging()
app = FastAPI(title=settings.APP_NAME)

logger = logging.getLogger(__name__)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id_ctx.set(request.headers.get("x-request-id", "-"))
    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000
    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {process_time:.2f}ms"
    )
    return response

@app.exception_handler(QueueError)
async def queue_error_handler(request: Request, exc: QueueError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "VALIDATION", "message": message, "details": jsonable_errors(errors)},
    )

@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def store_error_handler(request: Request, exc: Exception):
    logger.error(f"Store failure for request {request.method} {request.url.path}: {exc}")
    err = StoreUnavailable("The visit store is unavailable")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )

def jsonable_errors(errors: list) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]


@app.on_event("startup")
async def on_startup():
    await init_models()
    app.state.background = [
        asyncio.create_task(run_outbox_relay()),
        asyncio.create_task(run_outbox_retention()),
        asyncio.create_task(run_guest_session_purge()),
    ]

@app.on_event("shutdown")
async def on_shutdown():
    for task in getattr(app.state, "background", []):
        task.cancel()
    for task in getattr(app.state, "background", []):
        try:
            await task
        except asyncio.CancelledError:
            pass
    await registry.aclose()


app.include_router(api_router, prefix=settings.API_PREFIX)
