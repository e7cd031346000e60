import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from . import telemetry_pipeline  # noqa: F401  registers the audit log listener
from .config import Settings, get_settings
from .db.session import check_database
from .logging_config import configure_logging
from .schedule_routes import router as schedule_router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Adaptive Study Scheduler", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(schedule_router)

settings_snapshot = get_settings()
logger.info("Scheduler starting with database configured: %s", bool(settings_snapshot.database_url))


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "legacy_model_cutoff": settings.legacy_model_cutoff.isoformat()}


@app.get("/healthz/database")
def database_health() -> Dict[str, Any]:
    try:
        details = check_database()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {"status": "ok", **details}
