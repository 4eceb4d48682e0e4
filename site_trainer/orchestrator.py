import time
import uuid
import logging
from dataclasses import dataclass, field

from site_trainer.background import spawn_background_task
from site_trainer.config import DEFAULT_MAX_DEPTH, DEFAULT_MAX_PAGES
from site_trainer.documents import Document, process_documents
from site_trainer.exceptions import (
    CrawlFailure, InvalidRequestError, LLMError, NoContentError, PersistenceError, SiteTrainerError,
)
from site_trainer.jobs import STATUS_COMPLETED, STATUS_FAILED, STATUS_PROCESSING

logger = logging.getLogger(__name__)

NO_CONTENT_MESSAGE = "No content to analyze. Please provide a valid URL or upload documents."

PROGRESS_CRAWL_STARTED = 5
PROGRESS_CRAWL_DONE = 40
PROGRESS_DOCUMENTS_DONE = 60
PROGRESS_GENERATING = 70
PROGRESS_COMPLETED = 100


def _int_field(data: dict, key: str, default: int, minimum: int) -> int:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise InvalidRequestError(f"'{key}' must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidRequestError(f"'{key}' must be an integer") from None
    if number < minimum:
        raise InvalidRequestError(f"'{key}' must be at least {minimum}")
    return number


@dataclass
class TrainingRequest:
    url: str | None = None
    documents: list[Document] = field(default_factory=list)
    max_pages: int = DEFAULT_MAX_PAGES
    max_depth: int = DEFAULT_MAX_DEPTH
    job_id: str | None = None
    user_id: str | None = None
    background: bool = True

    @classmethod
    def from_payload(cls, data, default_max_pages: int = DEFAULT_MAX_PAGES,
                     default_max_depth: int = DEFAULT_MAX_DEPTH) -> "TrainingRequest":
        """Validate a job submission body. Raises InvalidRequestError."""
        if not isinstance(data, dict):
            raise InvalidRequestError("Request body must be a JSON object")

        url = data.get('url')
        if url is not None and not isinstance(url, str):
            raise InvalidRequestError("'url' must be a string")
        url = url.strip() if url else None

        raw_documents = data.get('documents') or []
        if not isinstance(raw_documents, list):
            raise InvalidRequestError("'documents' must be a list")
        documents = []
        for index, item in enumerate(raw_documents):
            if not isinstance(item, dict):
                raise InvalidRequestError(f"Document {index + 1} must be an object with name, content and type")
            documents.append(Document.from_dict(item))

        if not url and not documents:
            raise InvalidRequestError("Either 'url' or a non-empty 'documents' list is required")

        background = data.get('background')
        if background is None:
            background = True
        elif not isinstance(background, bool):
            raise InvalidRequestError("'background' must be true or false")

        job_id = data.get('jobId')
        user_id = data.get('userId', data.get('user_id'))
        return cls(
            url=url,
            documents=documents,
            max_pages=_int_field(data, 'maxPages', default_max_pages, 1),
            max_depth=_int_field(data, 'maxDepth', default_max_depth, 0),
            job_id=str(job_id) if job_id else None,
            user_id=str(user_id) if user_id else None,
            background=background,
        )


@dataclass
class TrainingResult:
    summary: str
    faqs: list
    page_count: int = 0
    domain: str = ""


class _JobTracker:
    """Writes progress for one job and guarantees a single terminal write."""

    def __init__(self, store, job_id: str):
        self.store = store
        self.job_id = job_id
        self.finalized = False

    def progress(self, progress: int, **fields) -> None:
        if self.finalized:
            logger.warning(f"[Job {self.job_id}] Ignoring progress update after finalization")
            return
        self.store.update_job_status(self.job_id, STATUS_PROCESSING, progress=progress, **fields)

    def complete(self, result: TrainingResult) -> None:
        if self.finalized:
            logger.warning(f"[Job {self.job_id}] Already finalized; not marking completed")
            return
        self.store.update_job_status(
            self.job_id, STATUS_COMPLETED, progress=PROGRESS_COMPLETED, summary=result.summary,
            faqs=result.faqs, page_count=result.page_count, domain=result.domain,
        )
        self.finalized = True

    def fail(self, message: str) -> None:
        if self.finalized:
            logger.warning(f"[Job {self.job_id}] Already finalized; dropping failure: {message}")
            return
        self.finalized = True
        try:
            self.store.update_job_status(self.job_id, STATUS_FAILED, error=message)
        except Exception as e:
            logger.error(f"[Job {self.job_id}] Failed to record job failure ({message}): {e}", exc_info=True)


class JobOrchestrator:
    """Runs crawl, document ingestion and generation for a training request."""

    def __init__(self, store, crawler, generator, spawn=spawn_background_task, ingest=process_documents):
        self.store = store
        self.crawler = crawler
        self.generator = generator
        self.spawn = spawn
        self.ingest = ingest

    def start_job(self, request: TrainingRequest) -> str:
        """Create the job record and schedule the pipeline. Returns the job id immediately."""
        job_id = request.job_id or str(uuid.uuid4())
        self.store.create_job(job_id, request.url, request.user_id)
        try:
            self.spawn(lambda: self.run_job(job_id, request), name=f"TrainJob-{job_id[:8]}")
        except Exception as e:
            logger.error(f"[Job {job_id}] Failed to start background task: {e}", exc_info=True)
            _JobTracker(self.store, job_id).fail(f"Failed to start job: {e}")
            raise
        logger.info(f"[Job {job_id}] Accepted (url={request.url}, documents={len(request.documents)}, "
                    f"max_pages={request.max_pages}, max_depth={request.max_depth})")
        return job_id

    def run_job(self, job_id: str, request: TrainingRequest) -> None:
        """Background entry point. Never raises; every outcome ends in a terminal job status."""
        tracker = _JobTracker(self.store, job_id)
        started = time.time()
        logger.info(f"[Job {job_id}] Processing started for user {request.user_id or 'unknown'}")
        try:
            result = self.process(request, report=tracker.progress)
            tracker.complete(result)
            logger.info(f"[Job {job_id}] Completed: {result.page_count} pages, {len(result.faqs)} FAQs "
                        f"in {time.time() - started:.2f}s")
        except (CrawlFailure, NoContentError, LLMError) as e:
            logger.error(f"[Job {job_id}] Failed: {e}")
            tracker.fail(str(e))
        except PersistenceError as e:
            logger.error(f"[Job {job_id}] Job store write failed: {e}", exc_info=True)
            tracker.fail(f"Failed to update job status: {e}")
        except Exception as e:
            logger.error(f"[Job {job_id}] Fatal error: {e}", exc_info=True)
            tracker.fail(f"Fatal error: {e}")

    def run_sync(self, request: TrainingRequest) -> dict:
        """Run the pipeline in the caller's thread without a job record."""
        try:
            result = self.process(request)
        except SiteTrainerError as e:
            logger.error(f"Synchronous training failed: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.error(f"Synchronous training crashed: {e}", exc_info=True)
            return {"success": False, "error": f"Fatal error: {e}"}
        return {"success": True, "summary": result.summary, "faqs": result.faqs,
                "pageCount": result.page_count, "domain": result.domain}

    def process(self, request: TrainingRequest, report=None) -> TrainingResult:
        """Crawl, ingest and generate in sequence, reporting progress through ``report``."""
        report = report or (lambda progress, **fields: None)
        text_content = ""
        page_count = 0
        domain = ""

        if request.url:
            report(PROGRESS_CRAWL_STARTED)
            try:
                crawl = self.crawler.crawl(request.url, request.max_pages, request.max_depth)
            except Exception as e:
                raise CrawlFailure(f"Crawling error: {e}") from e
            if not crawl.success:
                raise CrawlFailure(crawl.error or "Failed to crawl website")
            text_content = crawl.text_content
            page_count = crawl.page_count
            domain = crawl.domain
            logger.info(f"[Crawl] Collected {page_count} pages from {domain}")
            report(PROGRESS_CRAWL_DONE, domain=domain, page_count=page_count)

        if request.documents:
            try:
                text_content += self.ingest(request.documents)
            except Exception as e:
                raise NoContentError(f"Document processing error: {e}") from e
            report(PROGRESS_DOCUMENTS_DONE)

        if not text_content.strip():
            raise NoContentError(NO_CONTENT_MESSAGE)

        report(PROGRESS_GENERATING)
        logger.info(f"[AI] Generating content from {len(text_content)} chars of text")
        try:
            generated = self.generator.generate(text_content, domain)
        except LLMError as e:
            raise LLMError(f"Error generating AI content: {e}") from e
        return TrainingResult(summary=generated["summary"], faqs=generated["faqs"],
                              page_count=page_count, domain=domain)
