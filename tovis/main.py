# tovis/main.py

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.orm import Session

from .config import settings
from .database import SessionLocal, engine, get_db
from .dependencies import get_redis
from .models import Base
from .redis_client import redis_client
from .routers import availability, bookings, calendar_blocks, holds, session, working_hours
from .services.errors import DomainError
from .services.pending_expiry import pending_expiry_loop

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)

    task = None
    if settings.pending_expiry_enabled:
        task = asyncio.create_task(
            pending_expiry_loop(
                SessionLocal,
                redis_client,
                settings.pending_expiry_interval_seconds,
            )
        )

    yield

    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="TOVIS Booking API", lifespan=lifespan)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {type(exc).__name__}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(availability.router)
app.include_router(bookings.router)
app.include_router(calendar_blocks.router)
app.include_router(holds.router)
app.include_router(session.router)
app.include_router(working_hours.router)


@app.get("/health")
def health(
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    db.execute(text("SELECT 1"))
    db.rollback()

    redis_ok = None
    if redis is not None:
        try:
            redis_ok = bool(redis.ping())
        except RedisError:
            redis_ok = False

    return {"db": True, "redis": redis_ok}
