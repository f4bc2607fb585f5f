import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from courtbook.db.init_db import create_database, seed_app_settings
from courtbook.db.base import Base
from courtbook.db.session import engine, SessionLocal
from courtbook.core.config import settings
from courtbook.core.exceptions import BookingError
from courtbook.api.v1.router import api_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def run_expiry_sweep() -> int:
    """One pass of the pending-payment expiry sweep in its own session."""
    from courtbook.services.lifecycle import expire_stale_bookings

    db = SessionLocal()
    try:
        return len(expire_stale_bookings(db))
    finally:
        db.close()


async def _expiry_sweep_loop(interval_seconds: int) -> None:
    """Background task: release unpaid bookings whose deadline has passed."""
    while True:
        try:
            count = await asyncio.to_thread(run_expiry_sweep)
            if count:
                logger.info("Expiry sweep released %d booking(s).", count)
        except Exception:
            logger.exception("Error during booking expiry sweep.")
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Ensure DB exists, create tables, seed global settings
    if settings.CREATE_DATABASE_ON_STARTUP:
        create_database()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        added = seed_app_settings(db)
        if added:
            logger.info("Seeded %d app setting(s).", added)
    finally:
        db.close()

    sweep_task = None
    if settings.EXPIRY_SWEEP_INTERVAL_SECONDS > 0:
        sweep_task = asyncio.create_task(_expiry_sweep_loop(settings.EXPIRY_SWEEP_INTERVAL_SECONDS))
    yield

    # Shutdown: cancel background task
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    http_exc = exc.to_http_exception()
    return JSONResponse(status_code=http_exc.status_code, content=http_exc.detail, headers=http_exc.headers)


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
def read_root():
    return {"Hello": "Courtbook"}
