# backend/pagecast/services/extractor.py
import asyncio
import io
import re
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

import httpx
from pypdf import PdfReader

from ..errors import ExtractionFailed
from ..utils.logging import service_logger


@dataclass(frozen=True)
class ExtractedPage:
    page_number: int
    text: str


class Extractor(Protocol):
    async def extract(self, data: bytes) -> List[ExtractedPage]:
        """Split a document into numbered page texts, all or nothing"""


_BLANK_RUN = re.compile(r"\n{3,}")


def normalize_page_text(text: Optional[str]) -> str:
    """Flatten parser output into plain text suitable for narration"""
    if not text:
        return ""
    cleaned = text.replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n").replace("\f", "\n")
    lines = [line.rstrip() for line in cleaned.split("\n")]
    return _BLANK_RUN.sub("\n\n", "\n".join(lines)).strip()


def build_pages(texts: Sequence[Optional[str]]) -> List[ExtractedPage]:
    """Number page texts from 1 in document order"""
    if not texts:
        raise ExtractionFailed("Parser returned no pages for a non-empty document")
    return [
        ExtractedPage(page_number=index, text=normalize_page_text(text))
        for index, text in enumerate(texts, start=1)
    ]


def _json_object(response: httpx.Response) -> dict:
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError(f"expected a JSON object, got {type(body).__name__}")
    return body


class LlamaParseExtractor:
    """Extractor backed by the LlamaCloud parsing API (markdown output)"""

    def __init__(
            self,
            api_key: Optional[str],
            base_url: str = "https://api.cloud.llamaindex.ai",
            poll_interval: float = 2.0,
            max_polls: int = 150,
            timeout: float = 60.0,
            transport: Optional[httpx.AsyncBaseTransport] = None,
            sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.timeout = timeout
        self.transport = transport
        self._sleep = sleep

    async def extract(self, data: bytes) -> List[ExtractedPage]:
        if not data:
            raise ExtractionFailed("Source document is empty")
        if not self.api_key:
            raise ExtractionFailed("LlamaCloud API key is not configured")

        start_time = time.perf_counter()
        service_logger.info("Starting LlamaParse extraction", extra={
            "document_size_bytes": len(data)
        })

        try:
            async with httpx.AsyncClient(
                    base_url=self.base_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=self.timeout,
                    transport=self.transport
            ) as client:
                job_id = await self._upload(client, data)
                await self._wait_for_job(client, job_id)
                texts = await self._fetch_page_texts(client, job_id)
        except httpx.TimeoutException as e:
            raise ExtractionFailed("LlamaParse request timed out", e) from e
        except httpx.HTTPStatusError as e:
            raise ExtractionFailed(
                f"LlamaParse returned HTTP {e.response.status_code}", e
            ) from e
        except httpx.RequestError as e:
            raise ExtractionFailed("Could not reach LlamaParse", e) from e
        except ValueError as e:
            raise ExtractionFailed("LlamaParse returned a malformed response", e) from e

        pages = build_pages(texts)
        service_logger.info("LlamaParse extraction completed", extra={
            "job_id": job_id,
            "page_count": len(pages),
            "execution_time_ms": round((time.perf_counter() - start_time) * 1000, 2)
        })
        return pages

    async def _upload(self, client: httpx.AsyncClient, data: bytes) -> str:
        response = await client.post(
            "/api/parsing/upload",
            files={"file": ("document.pdf", data, "application/pdf")},
            data={"result_type": "markdown"}
        )
        response.raise_for_status()
        job_id = _json_object(response).get("id")
        if not job_id:
            raise ValueError("upload response carries no job id")
        return job_id

    async def _wait_for_job(self, client: httpx.AsyncClient, job_id: str) -> None:
        for poll in range(self.max_polls):
            response = await client.get(f"/api/parsing/job/{job_id}")
            response.raise_for_status()
            status = str(_json_object(response).get("status", "")).upper()

            if status == "SUCCESS":
                return
            if status in ("ERROR", "CANCELED", "CANCELLED"):
                raise ExtractionFailed(f"LlamaParse job {job_id} ended with status {status}")

            service_logger.debug("Waiting for LlamaParse job", extra={
                "job_id": job_id,
                "status": status,
                "poll": poll + 1
            })
            await self._sleep(self.poll_interval)

        raise ExtractionFailed(
            f"LlamaParse job {job_id} did not finish after {self.max_polls} polls"
        )

    async def _fetch_page_texts(self, client: httpx.AsyncClient, job_id: str) -> List[str]:
        response = await client.get(f"/api/parsing/job/{job_id}/result/json")
        response.raise_for_status()
        pages = _json_object(response).get("pages") or []
        if not isinstance(pages, list) or not all(isinstance(page, dict) for page in pages):
            raise ValueError("result pages are not a list of objects")
        ordered = sorted(pages, key=lambda page: page.get("page", 0))
        return [page.get("md") or page.get("text") or "" for page in ordered]


class PypdfExtractor:
    """Local extractor for text-based PDFs"""

    async def extract(self, data: bytes) -> List[ExtractedPage]:
        if not data:
            raise ExtractionFailed("Source document is empty")

        texts = await asyncio.to_thread(self._read_page_texts, data)
        pages = build_pages(texts)
        if not any(page.text for page in pages):
            raise ExtractionFailed("No extractable text found in PDF")

        service_logger.info("PDF text extracted", extra={
            "page_count": len(pages),
            "document_size_bytes": len(data)
        })
        return pages

    @staticmethod
    def _read_page_texts(data: bytes) -> List[str]:
        try:
            reader = PdfReader(io.BytesIO(data))
            return [page.extract_text() or "" for page in reader.pages]
        except Exception as e:
            raise ExtractionFailed("Source bytes are not a readable PDF", e) from e
