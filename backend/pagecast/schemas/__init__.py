# backend/pagecast/schemas/__init__.py
from .document import Document, DocumentDetail
from .page import Page, AudioFile
from .job import GenerateAudioRequest, PageResult, DispatchedRun, JobResult, JobStatusView

__all__ = [
    "Document", "DocumentDetail",
    "Page", "AudioFile",
    "GenerateAudioRequest", "PageResult", "DispatchedRun", "JobResult", "JobStatusView"
]
