# backend/pagecast/services/coordinator.py
import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ..errors import (
    CreationFailed,
    ErrorKind,
    ExtractionFailed,
    InvalidInput,
    NotFound,
    PagecastError,
    PersistenceFailed,
)
from ..models.generation_job import JobStatus
from ..schemas.document import DocumentDetail
from ..schemas.job import DispatchedRun, JobStatusView, PageResult
from ..utils.logging import pipeline_logger
from .extractor import Extractor
from .job_runner import PageJobRunner
from .ledger import Ledger, PageRef
from .retry import RetryPolicy
from .storage import Store
from .synthesizer import Synthesizer, validate_voice_id


@dataclass
class PlannedPage:
    page_id: int
    page: Optional[PageRef] = None
    run_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class GenerationPlan:
    """Validated generation batch; every requested page has an entry, in request order"""
    document_id: int
    voice_id: str
    entries: List[PlannedPage] = field(default_factory=list)

    def dispatched_runs(self) -> List[DispatchedRun]:
        return [
            DispatchedRun(
                page_id=entry.page_id,
                run_id=entry.run_id,
                error=entry.error,
                error_kind=ErrorKind.INVALID_INPUT.value if entry.error else None
            )
            for entry in self.entries
        ]


class PipelineCoordinator:
    """Document-to-audiobook pipeline over injected extractor, synthesizer, store and ledger"""

    def __init__(
            self,
            extractor: Extractor,
            synthesizer: Synthesizer,
            store: Store,
            ledger: Ledger,
            retry_policy: Optional[RetryPolicy] = None,
            concurrency: int = 4,
            sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.extractor = extractor
        self.ledger = ledger
        self.concurrency = concurrency
        self.runner = PageJobRunner(
            synthesizer=synthesizer,
            store=store,
            ledger=ledger,
            retry_policy=retry_policy,
            sleep=sleep
        )
        self._background_tasks = set()

    # Documents

    async def create_document(self, name: str, owner_id: str, data: bytes) -> DocumentDetail:
        if not name or not name.strip():
            raise InvalidInput("Document name must not be empty")
        if not owner_id:
            raise InvalidInput("Owner id must not be empty")

        start_time = time.perf_counter()
        pipeline_logger.info("Creating document", extra={
            "document_name": name,
            "owner_id": owner_id,
            "document_size_bytes": len(data or b"")
        })

        try:
            pages = await self.extractor.extract(data)
            if not pages:
                raise ExtractionFailed("Extractor returned no pages")
            numbers = [page.page_number for page in pages]
            if numbers != list(range(1, len(pages) + 1)):
                raise ExtractionFailed(f"Extractor returned non-contiguous page numbers {numbers}")
            document = self.ledger.create_document(name.strip(), owner_id, pages)
        except (ExtractionFailed, PersistenceFailed) as e:
            pipeline_logger.error("Document creation failed", extra={
                "document_name": name,
                "owner_id": owner_id,
                "error_kind": e.kind.value,
                "error": str(e)
            })
            raise CreationFailed("Failed to create document", e) from e

        pipeline_logger.info("Document created", extra={
            "document_id": document.id,
            "page_count": document.page_count,
            "execution_time_ms": round((time.perf_counter() - start_time) * 1000, 2)
        })
        return document

    def get_document(self, document_id: int) -> DocumentDetail:
        return self.ledger.get_document(document_id)

    def get_all_documents(self, owner_id: str) -> List[DocumentDetail]:
        return self.ledger.list_documents(owner_id)

    def delete_document(self, document_id: int) -> Dict[str, int]:
        pipeline_logger.info("Deleting document", extra={"document_id": document_id})
        return self.ledger.delete_document(document_id)

    # Generation

    def plan_generation(self, document_id: int, page_ids: Sequence[int], voice_id: str) -> GenerationPlan:
        """Validate a batch and create a pending job for each page that belongs to the document"""
        validate_voice_id(voice_id)
        if not page_ids:
            raise InvalidInput("At least one page id is required")
        if not self.ledger.document_exists(document_id):
            raise NotFound(f"Document {document_id} not found")

        requested = list(dict.fromkeys(page_ids))
        pages = self.ledger.get_pages(document_id, requested)

        # All jobs of the batch are committed together or not at all
        run_ids = self.ledger.create_jobs([page_id for page_id in requested if page_id in pages], voice_id)

        plan = GenerationPlan(document_id=document_id, voice_id=voice_id)
        for page_id in requested:
            page = pages.get(page_id)
            if page is None:
                plan.entries.append(PlannedPage(
                    page_id=page_id,
                    error=f"Page {page_id} does not belong to document {document_id}"
                ))
                continue
            plan.entries.append(PlannedPage(page_id=page_id, page=page, run_id=run_ids[page_id]))

        pipeline_logger.info("Generation planned", extra={
            "document_id": document_id,
            "voice_id": voice_id,
            "requested_pages": len(requested),
            "runnable_pages": sum(1 for entry in plan.entries if entry.run_id)
        })
        return plan

    async def run_plan(self, plan: GenerationPlan) -> List[PageResult]:
        """Run every planned page behind a bounded worker pool and wait for all of them"""
        start_time = time.perf_counter()
        semaphore = asyncio.Semaphore(self.concurrency)
        runnable = [entry for entry in plan.entries if entry.run_id]

        outcomes = await asyncio.gather(
            *(self._run_bounded(semaphore, entry, plan.voice_id) for entry in runnable),
            return_exceptions=True
        )
        by_page = dict(zip((entry.page_id for entry in runnable), outcomes))

        results = []
        crash = None
        for entry in plan.entries:
            if entry.run_id is None:
                results.append(PageResult(
                    page_id=entry.page_id,
                    status="failed",
                    error=entry.error,
                    error_kind=ErrorKind.INVALID_INPUT.value
                ))
                continue
            outcome = by_page[entry.page_id]
            if isinstance(outcome, PageResult):
                results.append(outcome)
            elif isinstance(outcome, PagecastError):
                results.append(PageResult(
                    page_id=entry.page_id,
                    status="failed",
                    run_id=entry.run_id,
                    error=str(outcome),
                    error_kind=outcome.kind.value
                ))
            elif isinstance(outcome, asyncio.CancelledError):
                results.append(PageResult(
                    page_id=entry.page_id,
                    status="failed",
                    run_id=entry.run_id,
                    error="Generation cancelled",
                    error_kind=ErrorKind.CANCELLED.value
                ))
            else:
                crash = crash or outcome

        if crash is not None:
            raise crash

        succeeded = sum(1 for result in results if result.succeeded)
        pipeline_logger.info("Generation batch finished", extra={
            "document_id": plan.document_id,
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "execution_time_ms": round((time.perf_counter() - start_time) * 1000, 2)
        })
        return results

    async def generate_audio(self, document_id: int, page_ids: Sequence[int], voice_id: str) -> List[PageResult]:
        """Synthesize and store audio for the given pages; one result per requested page"""
        plan = self.plan_generation(document_id, page_ids, voice_id)
        return await self.run_plan(plan)

    def dispatch_audio(
            self,
            document_id: int,
            page_ids: Sequence[int],
            voice_id: str,
            schedule: Optional[Callable] = None
    ) -> List[DispatchedRun]:
        """Plan a batch, hand it to an executor and return run ids for status polling.

        `schedule(func, plan)` defaults to a task on the running event loop.
        """
        plan = self.plan_generation(document_id, page_ids, voice_id)
        if schedule is not None:
            schedule(self.run_plan, plan)
        else:
            task = asyncio.get_running_loop().create_task(self.run_plan(plan))
            self._background_tasks.add(task)
            task.add_done_callback(self._on_background_done)
        return plan.dispatched_runs()

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            pipeline_logger.warning("Background generation batch cancelled")
            return
        error = task.exception()
        if error is not None:
            pipeline_logger.error("Background generation batch crashed", extra={
                "error_type": type(error).__name__,
                "error": str(error)
            }, exc_info=error)

    def get_job_status(self, run_id: str) -> JobStatusView:
        return self.ledger.get_job(run_id)

    async def _run_bounded(self, semaphore: asyncio.Semaphore, entry: PlannedPage, voice_id: str) -> PageResult:
        started = False
        try:
            async with semaphore:
                started = True
                return await self.runner.run(entry.run_id, entry.page, voice_id)
        except asyncio.CancelledError:
            if not started:
                # Never acquired a worker slot, so the runner never saw this job
                self.ledger.update_job(
                    entry.run_id,
                    status=JobStatus.FAILED,
                    error="Generation cancelled before start",
                    error_kind=ErrorKind.CANCELLED.value
                )
            raise
