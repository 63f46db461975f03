# backend/pagecast/dependencies.py
from fastapi import Header, HTTPException, Request

from .config import Settings, settings as default_settings
from .database import SessionLocal
from .services.coordinator import PipelineCoordinator
from .services.extractor import LlamaParseExtractor, PypdfExtractor
from .services.ledger import Ledger
from .services.retry import RetryPolicy
from .services.storage import LocalArtifactStore, S3ArtifactStore
from .services.synthesizer import ElevenLabsSynthesizer
from .utils.logging import service_logger


def build_extractor(config: Settings):
    if config.EXTRACTOR_BACKEND == "pypdf":
        return PypdfExtractor()
    return LlamaParseExtractor(
        api_key=config.LLAMA_CLOUD_API_KEY,
        base_url=config.LLAMA_CLOUD_BASE_URL,
        poll_interval=config.LLAMA_PARSE_POLL_INTERVAL_SECONDS,
        max_polls=config.LLAMA_PARSE_MAX_POLLS,
        timeout=config.REQUEST_TIMEOUT_SECONDS
    )


def build_synthesizer(config: Settings) -> ElevenLabsSynthesizer:
    return ElevenLabsSynthesizer(
        api_key=config.ELEVENLABS_API_KEY,
        base_url=config.ELEVENLABS_BASE_URL,
        model_id=config.ELEVENLABS_MODEL_ID,
        output_format=config.ELEVENLABS_OUTPUT_FORMAT,
        timeout=config.REQUEST_TIMEOUT_SECONDS
    )


def build_store(config: Settings):
    if config.STORAGE_BACKEND == "local":
        return LocalArtifactStore(config.STORAGE_PATH)
    return S3ArtifactStore(
        bucket=config.AWS_S3_BUCKET,
        endpoint_url=config.AWS_ENDPOINT,
        region_name=config.AWS_REGION,
        aws_access_key_id=config.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY,
        public_base_url=config.AWS_PUBLIC_BASE_URL
    )


def build_coordinator(config: Settings = default_settings, session_factory=SessionLocal) -> PipelineCoordinator:
    """Composition root: every external client is constructed here and injected"""
    service_logger.info("Building pipeline coordinator", extra={
        "extractor_backend": config.EXTRACTOR_BACKEND,
        "storage_backend": config.STORAGE_BACKEND,
        "concurrency": config.GENERATION_CONCURRENCY,
        "max_attempts": config.JOB_MAX_ATTEMPTS
    })
    return PipelineCoordinator(
        extractor=build_extractor(config),
        synthesizer=build_synthesizer(config),
        store=build_store(config),
        ledger=Ledger(session_factory),
        retry_policy=RetryPolicy.from_settings(config),
        concurrency=config.GENERATION_CONCURRENCY
    )


def get_coordinator(request: Request) -> PipelineCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        coordinator = build_coordinator()
        request.app.state.coordinator = coordinator
    return coordinator


def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    """Owner identity supplied by the authenticating proxy"""
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    return x_owner_id.strip()
