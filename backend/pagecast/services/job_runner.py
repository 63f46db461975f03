# backend/pagecast/services/job_runner.py
import asyncio
import time
from typing import Awaitable, Callable, Optional

from ..errors import ErrorKind, PagecastError
from ..models.generation_job import JobStatus
from ..schemas.job import PageResult
from ..utils.logging import pipeline_logger
from .ledger import Ledger, PageRef
from .retry import RetryPolicy
from .storage import Store, build_audio_key, timestamp_millis
from .synthesizer import Synthesizer


class PageJobRunner:
    """Drives one page through synthesize -> store -> record.

    The job moves pending -> running -> succeeded | failed. Retryable
    failures back off according to the retry policy; InvalidInput fails
    the job on the first attempt. The AudioFile row and the job's success
    are written together in one commit, so a failed job never leaves audio
    behind.
    """

    def __init__(
            self,
            synthesizer: Synthesizer,
            store: Store,
            ledger: Ledger,
            retry_policy: Optional[RetryPolicy] = None,
            sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
            clock: Callable[[], int] = timestamp_millis
    ):
        self.synthesizer = synthesizer
        self.store = store
        self.ledger = ledger
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    async def run(self, run_id: str, page: PageRef, voice_id: str) -> PageResult:
        start_time = time.perf_counter()
        log_context = {
            "run_id": run_id,
            "page_id": page.id,
            "document_id": page.document_id,
            "page_number": page.page_number,
            "voice_id": voice_id
        }
        pipeline_logger.info("Page job started", extra=log_context)

        attempt = 0
        try:
            self.ledger.update_job(run_id, status=JobStatus.RUNNING)
            while True:
                attempt += 1
                self.ledger.update_job(run_id, attempts=attempt)
                try:
                    audio = await self._attempt(run_id, page, voice_id)
                except PagecastError as e:
                    if e.retryable and self.retry_policy.should_retry(attempt):
                        delay = self.retry_policy.delay_for(attempt)
                        pipeline_logger.warning("Page job attempt failed, retrying", extra={
                            **log_context,
                            "attempt": attempt,
                            "error_kind": e.kind.value,
                            "error": str(e),
                            "retry_in_seconds": round(delay, 3)
                        })
                        await self._sleep(delay)
                        continue

                    pipeline_logger.error("Page job failed", extra={
                        **log_context,
                        "attempt": attempt,
                        "error_kind": e.kind.value,
                        "error": str(e),
                        "execution_time_ms": round((time.perf_counter() - start_time) * 1000, 2)
                    })
                    self.ledger.update_job(
                        run_id,
                        status=JobStatus.FAILED,
                        error=str(e),
                        error_kind=e.kind.value
                    )
                    return PageResult(
                        page_id=page.id,
                        status="failed",
                        run_id=run_id,
                        attempts=attempt,
                        error=str(e),
                        error_kind=e.kind.value
                    )

                pipeline_logger.info("Page job succeeded", extra={
                    **log_context,
                    "attempts": attempt,
                    "audio_file_id": audio.id,
                    "locator": audio.file_path,
                    "execution_time_ms": round((time.perf_counter() - start_time) * 1000, 2)
                })
                return PageResult(
                    page_id=page.id,
                    status="succeeded",
                    run_id=run_id,
                    attempts=attempt,
                    audio_file_id=audio.id,
                    locator=audio.file_path
                )
        except asyncio.CancelledError:
            pipeline_logger.warning("Page job cancelled", extra={**log_context, "attempt": attempt})
            self.ledger.update_job(
                run_id,
                status=JobStatus.FAILED,
                error="Generation cancelled",
                error_kind=ErrorKind.CANCELLED.value
            )
            raise
        except PagecastError as e:
            # Ledger bookkeeping itself failed; leave the job terminal if the ledger allows it
            pipeline_logger.error("Page job bookkeeping failed", extra={
                **log_context,
                "attempt": attempt,
                "error_kind": e.kind.value,
                "error": str(e)
            })
            self._mark_failed_quietly(run_id, e)
            raise
        except Exception as e:
            # Programming errors propagate, but the job must not stay "running"
            pipeline_logger.critical("Page job crashed", extra={
                **log_context,
                "attempt": attempt,
                "error_type": type(e).__name__
            }, exc_info=True)
            self.ledger.update_job(
                run_id,
                status=JobStatus.FAILED,
                error=f"{type(e).__name__}: {e}",
                error_kind="internal_error"
            )
            raise

    async def _attempt(self, run_id: str, page: PageRef, voice_id: str):
        audio_bytes = await self.synthesizer.synthesize(page.content, voice_id)
        key = build_audio_key(
            page.document_id,
            page.page_number,
            self._clock(),
            self.synthesizer.file_extension
        )
        locator = await self.store.put(key, audio_bytes, self.synthesizer.content_type)
        return self.ledger.complete_job(run_id, page.id, key, locator, voice_id)

    def _mark_failed_quietly(self, run_id: str, error: PagecastError) -> None:
        try:
            self.ledger.update_job(
                run_id,
                status=JobStatus.FAILED,
                error=str(error),
                error_kind=error.kind.value
            )
        except PagecastError as e:
            pipeline_logger.critical("Could not mark page job failed", extra={
                "run_id": run_id,
                "error": str(e)
            })
