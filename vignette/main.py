import logging

from fastapi import FastAPI

from vignette.api.deps import peek_sessions
from vignette.api.routes import router
from vignette.config import Settings

settings = Settings.from_env()

app = FastAPI(title="vignette", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@app.on_event("shutdown")
async def _shutdown() -> None:
    sessions = peek_sessions()
    if sessions is not None:
        await sessions.close_all()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "vignette", "version": "0.1.0"}
