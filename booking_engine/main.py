# booking_engine/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from booking_engine.config import get_settings
from booking_engine.db.session import engine
from booking_engine.models import Base
from booking_engine.routers import availability, bookings, slots

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# Calendar and webhook calls log every request at INFO otherwise
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("%s started (env=%s)", settings.APP_NAME, settings.ENV)
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Routers
app.include_router(slots.router, prefix="/slots", tags=["slots"])
app.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
app.include_router(availability.router, prefix="/users", tags=["availability"])


@app.get("/health")
def health_check():
    db_status = "ok"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database health check failed")
        db_status = "error"

    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "database": db_status,
    }
