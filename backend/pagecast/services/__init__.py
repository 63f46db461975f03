# backend/pagecast/services/__init__.py
from .coordinator import PipelineCoordinator, GenerationPlan
from .extractor import ExtractedPage, LlamaParseExtractor, PypdfExtractor
from .job_runner import PageJobRunner
from .ledger import Ledger, PageRef
from .retry import RetryPolicy
from .storage import LocalArtifactStore, S3ArtifactStore, build_audio_key
from .synthesizer import ElevenLabsSynthesizer

__all__ = [
    "PipelineCoordinator", "GenerationPlan",
    "ExtractedPage", "LlamaParseExtractor", "PypdfExtractor",
    "PageJobRunner",
    "Ledger", "PageRef",
    "RetryPolicy",
    "LocalArtifactStore", "S3ArtifactStore", "build_audio_key",
    "ElevenLabsSynthesizer"
]
