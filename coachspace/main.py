import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api.routes import classes, bookings, users, misc
from .db.session import Base, engine
from .config import get_settings
from .services.booking_service import get_booking_manager
from .workers.scheduler import get_scheduler

logger = logging.getLogger(__name__)

app = FastAPI(title="CoachSpace Booking API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(classes.router, prefix="/api/v1")
app.include_router(bookings.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(misc.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    Base.metadata.create_all(bind=engine)
    if settings.scheduler_enabled:
        scheduler = get_scheduler()
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Background scheduler started")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    get_booking_manager().events.close()
