import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from sqlalchemy.orm import Session

from roadtrack.api.equipment import router as equipment_router
from roadtrack.api.equipment_routes import router as equipment_routes_router
from roadtrack.api.errors import register_exception_handlers
from roadtrack.api.movements import router as movements_router
from roadtrack.core.config import Settings, get_settings
from roadtrack.core.logging import configure_logging
from roadtrack.db.base import Base
from roadtrack.db.session import SessionLocal, check_db_connection, engine, get_db
from roadtrack.repositories.movements import movement_store_scope
from roadtrack.services.cycle_writer import CycleWriterService

logger = logging.getLogger("roadtrack.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)

    if settings.database_create_all:
        # importing the models registers their tables on Base.metadata
        import roadtrack.db.models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("database tables created from metadata")

    cycle_writer = CycleWriterService(
        settings=settings,
        store_factory=movement_store_scope(SessionLocal),
    )

    app.state.settings = settings
    app.state.cycle_writer = cycle_writer
    logger.info(
        "movement log ready status_mode=%s slots=%sx%s max_cycles_per_group=%s",
        cycle_writer.status_mode,
        settings.movement_slot_count,
        settings.movement_slot_capacity,
        settings.movement_max_cycles_per_group,
    )
    yield


app = FastAPI(title="Roadtrack Backend", lifespan=lifespan)
app.include_router(equipment_router)
app.include_router(equipment_routes_router)
app.include_router(movements_router)
register_exception_handlers(app)


@app.get("/health")
def health():
    return {"status": "ok", "service": "backend"}


@app.get("/status")
def status(request: Request, db: Session = Depends(get_db)):
    db_ok, db_error = check_db_connection(db)
    cycle_writer: CycleWriterService | None = getattr(request.app.state, "cycle_writer", None)
    settings: Settings | None = getattr(request.app.state, "settings", None)

    db_status: dict[str, object] = {"ok": db_ok}
    if db_error:
        db_status["error"] = db_error

    return {
        "status": "working",
        "service": "backend",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_status,
        "movements": {
            "available": cycle_writer is not None,
            "status_mode": cycle_writer.status_mode if cycle_writer else None,
        },
        "config": {
            "movement_slot_count": settings.movement_slot_count if settings else None,
            "movement_slot_capacity": settings.movement_slot_capacity if settings else None,
            "movement_max_cycles_per_group": (
                settings.movement_max_cycles_per_group if settings else None
            ),
            "movement_status_mode": settings.movement_status_mode if settings else None,
            "movement_gps_tolerance": settings.movement_gps_tolerance if settings else None,
        },
    }
