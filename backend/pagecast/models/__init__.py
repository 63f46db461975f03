# backend/pagecast/models/__init__.py
from ..database import Base
from .document import Document
from .page import Page
from .audio_file import AudioFile
from .generation_job import GenerationJob, JobStatus

__all__ = [
    "Base",
    "Document",
    "Page",
    "AudioFile",
    "GenerationJob",
    "JobStatus"
]
