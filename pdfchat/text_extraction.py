"""
PDF text extraction.

Two backends produce text annotated with "--- page N ---" markers:
- LlamaParseExtractor: the hosted parsing API (upload, then poll a job).
- PdfTextExtractor: local extraction with pypdf.
"""
import asyncio
import io
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import aiohttp
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .chunking import PAGE_MARKER_RE
from .errors import ExtractionError
from .logging_config import logger

CHARS_PER_ESTIMATED_PAGE = 3000


# ==================== Extraction results ====================

@dataclass(frozen=True)
class DirectText:
    text: str


@dataclass(frozen=True)
class PageArray:
    pages: List[str]


@dataclass(frozen=True)
class ParseJob:
    job_id: str


ExtractionResult = Union[DirectText, PageArray, ParseJob]


def resolve_upload_payload(payload: Dict[str, Any]) -> ExtractionResult:
    """
    Classify a parsing-service upload response once, at the boundary.

    Raises:
        ExtractionError: if the payload carries neither a job nor content
    """
    if payload.get("id"):
        return ParseJob(job_id=str(payload["id"]))
    if isinstance(payload.get("markdown"), str):
        return DirectText(text=payload["markdown"])
    if isinstance(payload.get("text"), str):
        return DirectText(text=payload["text"])
    if isinstance(payload.get("pages"), list):
        return PageArray(pages=[
            (page.get("text") or page.get("markdown") or "") if isinstance(page, dict) else str(page)
            for page in payload["pages"]
        ])
    raise ExtractionError("No content found in parsing service response")


def render_pages(pages: List[str]) -> str:
    """Join per-page texts, each preceded by its page marker."""
    return "\n\n".join(f"--- page {number} ---\n{text}" for number, text in enumerate(pages, start=1))


def estimate_page_count(text: str) -> int:
    """Page markers if present, otherwise one page per 3000 characters."""
    markers = len(PAGE_MARKER_RE.findall(text))
    return max(1, markers or math.ceil(len(text) / CHARS_PER_ESTIMATED_PAGE))


def count_pdf_pages(content: bytes) -> Optional[int]:
    """Exact page count from the PDF itself, or None if it can't be read."""
    try:
        return len(PdfReader(io.BytesIO(content)).pages)
    except Exception as e:
        logger.warning("Could not read page count from file", error=str(e))
        return None


# ==================== Job polling ====================

class PollState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollOutcome:
    state: PollState
    attempts: int
    message: Optional[str] = None


class JobStatusUnavailable(Exception):
    """A status request failed at the request level; the job itself may be fine."""


class JobPoller:
    """
    Polls a parse job on a fixed interval until it succeeds, fails, or the
    attempts run out. No backoff, no jitter.

    `fetch_status(job_id)` returns the status payload or raises
    JobStatusUnavailable; such failures are retried on the next interval.
    `sleep` is injectable so tests run without real delays.
    """

    def __init__(
        self,
        fetch_status: Callable[[str], Awaitable[Dict[str, Any]]],
        interval_sec: float = 10.0,
        max_attempts: int = 30,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetch_status = fetch_status
        self.interval_sec = interval_sec
        self.max_attempts = max_attempts
        self.sleep = sleep

    async def wait(self, job_id: str) -> PollOutcome:
        for attempt in range(1, self.max_attempts + 1):
            logger.debug("Polling parse job", job_id=job_id, attempt=attempt, max_attempts=self.max_attempts)
            try:
                status = await self.fetch_status(job_id)
            except JobStatusUnavailable as e:
                logger.warning("Job status unavailable", job_id=job_id, attempt=attempt, error=str(e))
                await self.sleep(self.interval_sec)
                continue

            state = str(status.get("status", "")).upper()
            if state == "SUCCESS":
                return PollOutcome(PollState.SUCCEEDED, attempt)
            if state in ("FAILED", "ERROR", "CANCELED"):
                return PollOutcome(
                    PollState.FAILED,
                    attempt,
                    status.get("message") or status.get("error_message") or "Unknown parsing error",
                )

            # PENDING / IN_PROGRESS
            await self.sleep(self.interval_sec)

        return PollOutcome(PollState.TIMED_OUT, self.max_attempts)


# ==================== Backends ====================

class TextExtractor(ABC):
    @abstractmethod
    async def extract(self, content: bytes, filename: str) -> str:
        """Return the document text, annotated with page markers where known."""


class LlamaParseClient:
    """Thin HTTP client for the LlamaParse REST API."""

    def __init__(self, api_key: str, base_url: str, timeout_sec: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {api_key}"}
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)

    async def upload(self, content: bytes, filename: str) -> Dict[str, Any]:
        form = aiohttp.FormData()
        form.add_field("file", content, filename=filename, content_type="application/pdf")
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(f"{self.base_url}/upload", data=form, headers=self.headers) as resp:
                    if resp.status >= 400:
                        error_text = await resp.text()
                        raise ExtractionError(f"LlamaParse API error: {resp.status} {error_text}")
                    return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExtractionError(f"LlamaParse upload failed: {e}") from e

    async def get_job_status(self, job_id: str) -> Dict[str, Any]:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(f"{self.base_url}/job/{job_id}", headers=self.headers) as resp:
                    if resp.status >= 400:
                        raise JobStatusUnavailable(f"{resp.status} {await resp.text()}")
                    return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise JobStatusUnavailable(str(e)) from e

    async def get_job_markdown(self, job_id: str) -> str:
        headers = {**self.headers, "Accept": "application/json"}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(f"{self.base_url}/job/{job_id}/result/markdown", headers=headers) as resp:
                    if resp.status >= 400:
                        error_text = await resp.text()
                        raise ExtractionError(f"Failed to fetch job result {resp.status}: {error_text}")
                    data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExtractionError(f"Failed to fetch job result: {e}") from e

        markdown = data.get("markdown")
        if not isinstance(markdown, str):
            raise ExtractionError("Unexpected result format: 'markdown' property not found or not a string.")
        return markdown


class LlamaParseExtractor(TextExtractor):
    def __init__(self, client: LlamaParseClient, poller: JobPoller):
        self.client = client
        self.poller = poller

    async def extract(self, content: bytes, filename: str) -> str:
        logger.info("Starting LlamaParse", filename=filename, size_bytes=len(content))
        result = resolve_upload_payload(await self.client.upload(content, filename))

        if isinstance(result, DirectText):
            return result.text
        if isinstance(result, PageArray):
            return render_pages(result.pages)

        logger.info("Got job ID, polling for results", job_id=result.job_id)
        outcome = await self.poller.wait(result.job_id)
        if outcome.state is PollState.FAILED:
            raise ExtractionError(f"Parsing job failed: {outcome.message}")
        if outcome.state is PollState.TIMED_OUT:
            waited = self.poller.interval_sec * self.poller.max_attempts
            raise ExtractionError(f"Parsing timed out after {waited:.0f} seconds.")

        text = await self.client.get_job_markdown(result.job_id)
        logger.info("Fetched parsed content", job_id=result.job_id, length=len(text), attempts=outcome.attempts)
        return text


class PdfTextExtractor(TextExtractor):
    """Local extraction with pypdf, one page marker per page."""

    async def extract(self, content: bytes, filename: str) -> str:
        try:
            pdf = PdfReader(io.BytesIO(content))
            pages = [page.extract_text() or "" for page in pdf.pages]
        except (PyPdfError, ValueError, OSError) as e:
            raise ExtractionError(f"Failed to read PDF {filename}: {e}") from e
        return render_pages(pages)


def build_text_extractor(settings, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> TextExtractor:
    if settings.extractor_backend == "pypdf":
        return PdfTextExtractor()

    client = LlamaParseClient(settings.require("llama_cloud_api_key"), settings.llama_parse_base_url)
    poller = JobPoller(
        client.get_job_status,
        interval_sec=settings.poll_interval_seconds,
        max_attempts=settings.poll_max_attempts,
        sleep=sleep,
    )
    return LlamaParseExtractor(client, poller)
