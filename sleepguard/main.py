"""FastAPI app: lifespan, CORS, router registration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
from .api.night_terror import router as night_terror_router
from .core.settings import settings
from .services.audit_log import log_audit_sink
from .services.calming_audio import HttpCalmingAudio
from .services.night_terror_config import night_terror_config_from_settings
from .services.night_terror_protocol import NightTerrorProtocol

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


# Used by: FastAPI lifespan (one protocol instance per app, stopped on shutdown)
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.night_terror = NightTerrorProtocol(
        config=night_terror_config_from_settings(settings),
        sink=log_audit_sink,
    )
    app.state.calming_audio = HttpCalmingAudio(
        base_url=settings.AUDIO_API_BASE_URL,
        volume=settings.AUDIO_CUE_VOLUME,
        timeout_seconds=settings.AUDIO_TIMEOUT_SECONDS,
    )
    app.state.bio_stream = None
    logger.info(f"Calming audio via {settings.AUDIO_API_BASE_URL}")

    yield

    await app.state.night_terror.aclose()
    if app.state.bio_stream is not None:
        app.state.bio_stream.close()


app = FastAPI(
    title="SleepGuard API",
    version="1.0.0",
    description="SleepGuard - Night Terror Detection & Intervention",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(night_terror_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
