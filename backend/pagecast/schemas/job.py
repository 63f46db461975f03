# backend/pagecast/schemas/job.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .base import BaseSchema
from ..models.generation_job import JobStatus


class GenerateAudioRequest(BaseModel):
    page_ids: List[int] = Field(..., min_length=1)
    voice_id: Optional[str] = None  # DEFAULT_VOICE_ID when omitted


class PageResult(BaseModel):
    """Outcome of one page in a generation batch"""
    page_id: int
    status: Literal["succeeded", "failed"]
    run_id: Optional[str] = None
    attempts: int = 0
    audio_file_id: Optional[int] = None
    locator: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


class DispatchedRun(BaseModel):
    page_id: int
    run_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class JobResult(BaseModel):
    audio_file_id: Optional[int] = None
    locator: Optional[str] = None


class JobStatusView(BaseSchema):
    run_id: str
    page_id: int
    voice_id: str
    status: JobStatus
    attempts: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
