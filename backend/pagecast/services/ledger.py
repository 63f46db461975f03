# backend/pagecast/services/ledger.py
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..errors import DeleteFailed, NotFound, PersistenceFailed
from ..models import AudioFile, Document, GenerationJob, JobStatus, Page
from ..schemas.document import DocumentDetail
from ..schemas.job import JobResult, JobStatusView
from ..schemas.page import AudioFile as AudioFileSchema
from ..utils.logging import db_logger
from .extractor import ExtractedPage


@dataclass(frozen=True)
class PageRef:
    id: int
    document_id: int
    page_number: int
    content: str


class Ledger:
    """System of record for documents, pages, audio files and generation jobs.

    Every call opens and closes its own session, so nothing read here is
    cached between calls.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            db_logger.error(f"Ledger operation failed: {operation}", extra={
                "operation": operation,
                "error": str(e)
            })
            raise PersistenceFailed(f"Ledger operation '{operation}' failed", e) from e
        except BaseException:
            db.rollback()
            raise
        finally:
            db.close()

    # Documents and pages

    def create_document(self, name: str, owner_id: str, pages: Sequence[ExtractedPage]) -> DocumentDetail:
        """Insert the document and its full page set in one transaction"""
        with self._session("create_document") as db:
            document = Document(name=name, created_by=owner_id)
            db.add(document)
            db.flush()
            db.add_all([
                Page(document_id=document.id, page_number=page.page_number, content=page.text)
                for page in pages
            ])
            db.commit()

            document = self._load_document(db, document.id)
            detail = self._to_detail(document)

        db_logger.info("Document persisted", extra={
            "document_id": detail.id,
            "page_count": detail.page_count
        })
        return detail

    def get_document(self, document_id: int) -> DocumentDetail:
        with self._session("get_document") as db:
            document = self._load_document(db, document_id)
            if document is None:
                raise NotFound(f"Document {document_id} not found")
            return self._to_detail(document)

    def list_documents(self, owner_id: str) -> List[DocumentDetail]:
        with self._session("list_documents") as db:
            documents = (
                db.query(Document)
                .options(selectinload(Document.pages).selectinload(Page.audio_files))
                .filter(Document.created_by == owner_id)
                .order_by(Document.created_at.desc(), Document.id.desc())
                .all()
            )
            return [self._to_detail(document) for document in documents]

    def get_pages(self, document_id: int, page_ids: Iterable[int]) -> Dict[int, PageRef]:
        """Pages of `document_id` among `page_ids`; foreign or unknown ids are absent"""
        ids = list(page_ids)
        if not ids:
            return {}
        with self._session("get_pages") as db:
            pages = (
                db.query(Page)
                .filter(Page.document_id == document_id, Page.id.in_(ids))
                .all()
            )
            return {
                page.id: PageRef(
                    id=page.id,
                    document_id=page.document_id,
                    page_number=page.page_number,
                    content=page.content or ""
                )
                for page in pages
            }

    def document_exists(self, document_id: int) -> bool:
        with self._session("document_exists") as db:
            return db.query(Document.id).filter(Document.id == document_id).first() is not None

    def delete_document(self, document_id: int) -> Dict[str, int]:
        """Delete jobs, audio files, pages, then the document, all or nothing.

        Each step must remove exactly the rows counted up front; a short count
        raises DeleteFailed and rolls the whole deletion back.
        """
        with self._session("delete_document") as db:
            if db.query(Document.id).filter(Document.id == document_id).first() is None:
                raise DeleteFailed(f"Document {document_id} not found")

            page_ids = [
                row.id for row in db.query(Page.id).filter(Page.document_id == document_id).all()
            ]
            expected_jobs = db.query(func.count(GenerationJob.id)) \
                .filter(GenerationJob.page_id.in_(page_ids)).scalar() if page_ids else 0
            expected_audio = db.query(func.count(AudioFile.id)) \
                .filter(AudioFile.page_id.in_(page_ids)).scalar() if page_ids else 0

            steps = [
                ("generation_jobs", expected_jobs,
                 lambda: db.query(GenerationJob).filter(GenerationJob.page_id.in_(page_ids))),
                ("audio_files", expected_audio,
                 lambda: db.query(AudioFile).filter(AudioFile.page_id.in_(page_ids))),
                ("pages", len(page_ids),
                 lambda: db.query(Page).filter(Page.document_id == document_id)),
                ("documents", 1,
                 lambda: db.query(Document).filter(Document.id == document_id)),
            ]

            deleted = {}
            for table, expected, query in steps:
                if expected == 0:
                    deleted[table] = 0
                    continue
                affected = query().delete(synchronize_session=False)
                if affected != expected:
                    db.rollback()
                    raise DeleteFailed(
                        f"Deleting {table} for document {document_id} affected "
                        f"{affected} rows, expected {expected}"
                    )
                deleted[table] = affected

            db.commit()

        db_logger.info("Document deleted", extra={
            "document_id": document_id,
            "deleted_rows": deleted
        })
        return deleted

    # Generation jobs

    def create_job(self, page_id: int, voice_id: str) -> str:
        return self.create_jobs([page_id], voice_id)[page_id]

    def create_jobs(self, page_ids: Sequence[int], voice_id: str) -> Dict[int, str]:
        """Create one pending job per page in a single transaction; returns page id -> run id"""
        run_ids = {page_id: f"run_{uuid.uuid4().hex}" for page_id in page_ids}
        if not run_ids:
            return {}
        with self._session("create_jobs") as db:
            db.add_all([
                GenerationJob(
                    run_id=run_id,
                    page_id=page_id,
                    voice_id=voice_id,
                    status=JobStatus.PENDING
                )
                for page_id, run_id in run_ids.items()
            ])
            db.commit()
        return run_ids

    def complete_job(
            self,
            run_id: str,
            page_id: int,
            file_name: str,
            locator: str,
            voice_id: str
    ) -> AudioFileSchema:
        """Record the audio file and mark the job succeeded in one commit"""
        with self._session("complete_job") as db:
            job = db.query(GenerationJob).filter(GenerationJob.run_id == run_id).first()
            if job is None:
                raise NotFound(f"Run {run_id} not found")

            audio = AudioFile(
                page_id=page_id,
                file_name=file_name,
                file_path=locator,
                voice_id=voice_id
            )
            db.add(audio)
            db.flush()

            job.status = JobStatus.SUCCEEDED
            job.audio_file_id = audio.id
            job.locator = locator
            db.commit()
            db.refresh(audio)
            return AudioFileSchema.model_validate(audio)

    def update_job(
            self,
            run_id: str,
            status: Optional[JobStatus] = None,
            attempts: Optional[int] = None,
            error: Optional[str] = None,
            error_kind: Optional[str] = None,
            audio_file_id: Optional[int] = None,
            locator: Optional[str] = None
    ) -> None:
        with self._session("update_job") as db:
            job = db.query(GenerationJob).filter(GenerationJob.run_id == run_id).first()
            if job is None:
                raise NotFound(f"Run {run_id} not found")
            if status is not None:
                job.status = status
            if attempts is not None:
                job.attempts = attempts
            if error is not None:
                job.error = error
            if error_kind is not None:
                job.error_kind = error_kind
            if audio_file_id is not None:
                job.audio_file_id = audio_file_id
            if locator is not None:
                job.locator = locator
            db.commit()

    def get_job(self, run_id: str) -> JobStatusView:
        with self._session("get_job") as db:
            job = db.query(GenerationJob).filter(GenerationJob.run_id == run_id).first()
            if job is None:
                raise NotFound(f"Run {run_id} not found")

            view = JobStatusView.model_validate(job)
            if job.status == JobStatus.SUCCEEDED:
                view.result = JobResult(audio_file_id=job.audio_file_id, locator=job.locator)
            return view

    # Helpers

    @staticmethod
    def _load_document(db: Session, document_id: int) -> Optional[Document]:
        return (
            db.query(Document)
            .options(selectinload(Document.pages).selectinload(Page.audio_files))
            .filter(Document.id == document_id)
            .first()
        )

    @staticmethod
    def _to_detail(document: Document) -> DocumentDetail:
        detail = DocumentDetail.model_validate(document)
        detail.page_count = len(document.pages)
        return detail
