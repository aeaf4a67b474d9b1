from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

from roadtrack.core.config import Settings

if TYPE_CHECKING:
    from roadtrack.services.cycle_writer import CycleWriterService


def get_settings_from_app(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise HTTPException(status_code=503, detail="Application settings are not initialized")
    return settings


def get_cycle_writer(request: Request) -> "CycleWriterService":
    service = getattr(request.app.state, "cycle_writer", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Cycle writer is not initialized")
    return service
