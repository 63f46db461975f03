# backend/pagecast/models/generation_job.py
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func

from ..database import Base


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class GenerationJob(Base):
    __tablename__ = "generation_jobs"

    id = Column(Integer, primary_key=True, index=True)
    run_id = Column(String(64), nullable=False, unique=True, index=True)
    page_id = Column(Integer, ForeignKey("pages.id"), nullable=False, index=True)
    voice_id = Column(String(64), nullable=False)
    status = Column(
        Enum(JobStatus, values_callable=lambda statuses: [s.value for s in statuses]),
        nullable=False,
        default=JobStatus.PENDING
    )
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    error_kind = Column(String(32), nullable=True)
    # Plain column: the audio row may be removed with its document while the job is read
    audio_file_id = Column(Integer, nullable=True)
    locator = Column(String(1024), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
