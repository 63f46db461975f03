# backend/pagecast/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .database import engine
from . import models
from .api import documents_router, jobs_router
from .config import Settings, settings
from .utils.logging import api_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create all tables on startup
    models.Base.metadata.create_all(bind=engine)
    api_logger.info("Pagecast API started", extra={
        "storage_backend": settings.STORAGE_BACKEND,
        "extractor_backend": settings.EXTRACTOR_BACKEND
    })
    yield


app = FastAPI(title="Pagecast API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify your actual frontend URL
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def mount_audio_storage(app: FastAPI, config: Settings) -> bool:
    """Serve locally stored audio at /storage/audio; only the audio directory is exposed"""
    if config.STORAGE_BACKEND != "local":
        return False
    app.mount("/storage/audio", StaticFiles(directory=str(config.AUDIO_PATH)), name="audio")
    return True


mount_audio_storage(app, settings)

app.include_router(documents_router)
app.include_router(jobs_router)


@app.get("/")
async def root():
    return {"message": "Pagecast API is running"}
