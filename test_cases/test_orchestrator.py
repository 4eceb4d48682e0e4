from unittest.mock import MagicMock, call

import pytest

from site_trainer.background import InlineSpawner
from site_trainer.crawler import Crawler, CrawlResult
from site_trainer.exceptions import InvalidRequestError, LLMTransportError, PersistenceError
from site_trainer.generator import ContentGenerator
from site_trainer.jobs import STATUS_COMPLETED, STATUS_FAILED, STATUS_PROCESSING, InMemoryJobStore
from site_trainer.orchestrator import (
    NO_CONTENT_MESSAGE, JobOrchestrator, TrainingRequest, TrainingResult, _JobTracker,
)

from test_cases.fakes import (
    LONG_PARAGRAPH, FakeOpenAI, FakeSession, StubCrawler, StubGenerator, faq_payload, make_page,
)

CRAWLED = CrawlResult(success=True, text_content="\n\n--- PAGE: https://example.com ---\nAcme builds widgets.",
                      page_count=1, domain="example.com")


class RecordingStore(InMemoryJobStore):
    def __init__(self):
        super().__init__()
        self.updates = []

    def update_job_status(self, job_id, status, **fields):
        self.updates.append((status, fields))
        return super().update_job_status(job_id, status, **fields)


def make_orchestrator(store=None, crawler=None, generator=None, spawn=None):
    return JobOrchestrator(store or RecordingStore(), crawler or StubCrawler(CRAWLED),
                           generator or StubGenerator(), spawn=spawn or InlineSpawner())


def test_single_page_site_end_to_end():
    session = FakeSession({"https://example.com": make_page(LONG_PARAGRAPH)})
    generator = ContentGenerator(FakeOpenAI(faq_payload(100)), sleep=lambda _s: None)
    orchestrator = make_orchestrator(crawler=Crawler(session=session), generator=generator)

    job_id = orchestrator.start_job(TrainingRequest.from_payload({"url": "example.com", "maxPages": 5, "maxDepth": 1}))
    job = orchestrator.store.get_job(job_id)

    assert job.status == STATUS_COMPLETED
    assert job.progress == 100
    assert job.page_count == 1
    assert job.domain == "example.com"
    assert job.summary
    assert len(job.faqs) == 100
    assert job.error is None


def test_documents_only():
    crawler = StubCrawler(CRAWLED)
    generator = StubGenerator()
    orchestrator = make_orchestrator(crawler=crawler, generator=generator)
    request = TrainingRequest.from_payload({"documents": [{"name": "handbook.txt", "content": "Acme handbook"}]})

    job = orchestrator.store.get_job(orchestrator.start_job(request))

    assert job.status == STATUS_COMPLETED
    assert job.domain == ""
    assert job.page_count == 0
    assert crawler.calls == []
    text, domain = generator.calls[0]
    assert "--- DOCUMENT 1: handbook.txt ---" in text
    assert domain == ""


def test_unreachable_site_fails_the_job():
    generator = StubGenerator()
    orchestrator = make_orchestrator(crawler=Crawler(session=FakeSession()), generator=generator)

    job = orchestrator.store.get_job(orchestrator.start_job(TrainingRequest.from_payload({"url": "unreachable.invalid"})))

    assert job.status == STATUS_FAILED
    assert "unreachable.invalid" in job.error
    assert job.summary is None
    assert job.faqs is None
    assert generator.calls == []


def test_invalid_request_creates_no_job():
    orchestrator = make_orchestrator()
    with pytest.raises(InvalidRequestError):
        TrainingRequest.from_payload({"maxPages": 5})
    assert orchestrator.store.list_jobs() == []


def test_progress_is_reported_in_order():
    store = RecordingStore()
    orchestrator = make_orchestrator(store=store)
    request = TrainingRequest(url="https://example.com", documents=TrainingRequest.from_payload(
        {"documents": [{"name": "a.txt", "content": "Extra"}]}).documents)

    orchestrator.start_job(request)

    assert [fields.get("progress") for _status, fields in store.updates] == [5, 40, 60, 70, 100]
    assert [status for status, _fields in store.updates][-1] == STATUS_COMPLETED
    assert store.updates[1][1] == {"progress": 40, "domain": "example.com", "page_count": 1}


@pytest.mark.parametrize("crawler,generator,message", [
    (StubCrawler(error=RuntimeError("dns lookup failed")), None, "Crawling error: dns lookup failed"),
    (StubCrawler(CrawlResult(success=False, error="Could not access example.com")), None,
     "Could not access example.com"),
    (None, StubGenerator(error=LLMTransportError("timed out")), "Error generating AI content: timed out"),
    (None, StubGenerator(error=RuntimeError("kaboom")), "Fatal error: kaboom"),
])
def test_failures_are_recorded(crawler, generator, message):
    orchestrator = make_orchestrator(crawler=crawler, generator=generator)
    job = orchestrator.store.get_job(orchestrator.start_job(TrainingRequest(url="https://example.com")))

    assert job.status == STATUS_FAILED
    assert job.error == message


def test_blank_documents_leave_nothing_to_analyze():
    orchestrator = make_orchestrator()
    request = TrainingRequest.from_payload({"documents": [{"name": "blank.txt", "content": "  "}]})
    job = orchestrator.store.get_job(orchestrator.start_job(request))

    assert job.status == STATUS_FAILED
    assert job.error == NO_CONTENT_MESSAGE


def test_job_store_outage_does_not_escape():
    store = MagicMock()
    store.update_job_status.side_effect = PersistenceError("db down")
    orchestrator = make_orchestrator(store=store)

    orchestrator.run_job("job-1", TrainingRequest(url="https://example.com"))

    assert store.update_job_status.call_args_list == [
        call("job-1", STATUS_PROCESSING, progress=5),
        call("job-1", STATUS_FAILED, error="Failed to update job status: db down"),
    ]


def test_tracker_writes_one_terminal_status():
    store = MagicMock()
    tracker = _JobTracker(store, "job-1")
    tracker.complete(TrainingResult(summary="s", faqs=[], page_count=1, domain="example.com"))
    tracker.fail("late failure")
    tracker.progress(50)

    assert store.update_job_status.call_count == 1
    assert store.update_job_status.call_args.args[1] == STATUS_COMPLETED


def test_job_stays_processing_until_the_task_runs():
    pending = []
    orchestrator = make_orchestrator(spawn=lambda fn, name=None: pending.append(fn))

    job_id = orchestrator.start_job(TrainingRequest(url="https://example.com", job_id="job-42"))

    assert job_id == "job-42"
    job = orchestrator.store.get_job(job_id)
    assert job.status == STATUS_PROCESSING
    assert job.progress == 0
    pending[0]()
    assert orchestrator.store.get_job(job_id).status == STATUS_COMPLETED


def test_spawn_failure_fails_the_job():
    def broken_spawn(fn, name=None):
        raise RuntimeError("can't start new thread")

    orchestrator = make_orchestrator(spawn=broken_spawn)
    with pytest.raises(RuntimeError):
        orchestrator.start_job(TrainingRequest(url="https://example.com", job_id="job-1"))

    job = orchestrator.store.get_job("job-1")
    assert job.status == STATUS_FAILED
    assert job.error == "Failed to start job: can't start new thread"


def test_run_sync():
    orchestrator = make_orchestrator()
    result = orchestrator.run_sync(TrainingRequest(url="https://example.com"))
    assert result["success"] is True
    assert result["pageCount"] == 1
    assert result["domain"] == "example.com"
    assert result["faqs"][0]["id"] == "faq-1"

    failing = make_orchestrator(crawler=StubCrawler(CrawlResult(success=False, error="blocked")))
    assert failing.run_sync(TrainingRequest(url="https://example.com")) == {"success": False, "error": "blocked"}


def test_request_defaults_and_aliases():
    request = TrainingRequest.from_payload({"url": " example.com ", "user_id": "u-1", "jobId": "j-1"})
    assert request.url == "example.com"
    assert request.max_pages == 20
    assert request.max_depth == 2
    assert request.user_id == "u-1"
    assert request.job_id == "j-1"
    assert request.background is True


@pytest.mark.parametrize("payload", [
    [],
    {},
    {"url": ""},
    {"url": 42},
    {"documents": "not a list"},
    {"documents": ["text"]},
    {"url": "example.com", "maxPages": 0},
    {"url": "example.com", "maxPages": "many"},
    {"url": "example.com", "maxPages": True},
    {"url": "example.com", "maxDepth": -1},
    {"url": "example.com", "background": "false"},
    {"url": "example.com", "background": 0},
])
def test_request_validation(payload):
    with pytest.raises(InvalidRequestError):
        TrainingRequest.from_payload(payload)


@pytest.mark.parametrize("value,expected", [(False, False), (True, True), (None, True)])
def test_request_background_flag(value, expected):
    request = TrainingRequest.from_payload({"url": "example.com", "background": value})
    assert request.background is expected
