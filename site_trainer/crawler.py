import time
import logging
import collections
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlparse

import requests

from site_trainer.config import (
    ALTERNATE_USER_AGENT, BROWSER_USER_AGENT, DEFAULT_ACCEPT, DEFAULT_ACCEPT_LANGUAGE,
    MAX_CRAWL_SECONDS, MAX_FAILURES_BEFORE_ABORT, MAX_HTML_CONTENT_LENGTH,
    MIN_FALLBACK_TEXT_LENGTH, MIN_MEANINGFUL_TEXT_LENGTH, PAGE_FETCH_TIMEOUT,
)
from site_trainer.extraction import extract_links, extract_text, job_link_score

logger = logging.getLogger(__name__)

RETRY_WITH_ALTERNATE_AGENT_STATUSES = (403, 429)


@dataclass
class CrawlResult:
    success: bool
    text_content: str = ""
    page_count: int = 0
    domain: str = ""
    error: str | None = None


class PageFetchError(Exception):
    """A single page could not be fetched. Never leaves the crawler."""


def normalize_url(url: str) -> str:
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    return url


def failure_threshold(max_pages: int) -> int:
    return max(1, min(MAX_FAILURES_BEFORE_ABORT, max_pages // 2))


def page_marker(url: str) -> str:
    return f"\n\n--- PAGE: {url} ---\n"


class Crawler:
    """Breadth-first, single-connection crawler bounded by pages, depth and time.

    Links with a positive score from ``scorer`` jump to the front of the
    queue; pass ``neutral_link_score`` for a plain BFS.
    """

    def __init__(self, session: requests.Session | None = None,
                 scorer: Callable[[str], int] = job_link_score,
                 page_timeout: float = PAGE_FETCH_TIMEOUT,
                 max_crawl_seconds: float = MAX_CRAWL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.session = session or requests.Session()
        self.scorer = scorer
        self.page_timeout = page_timeout
        self.max_crawl_seconds = max_crawl_seconds
        self.clock = clock

    def _headers(self, user_agent: str) -> dict:
        return {'User-Agent': user_agent, 'Accept': DEFAULT_ACCEPT, 'Accept-Language': DEFAULT_ACCEPT_LANGUAGE}

    def fetch_page(self, url: str, user_agent: str = BROWSER_USER_AGENT) -> str | None:
        """Fetch one page. Returns None for non-HTML responses, raises PageFetchError on failure."""
        try:
            response = self.session.get(url, headers=self._headers(user_agent),
                                        timeout=self.page_timeout, allow_redirects=True)
            if response.status_code in RETRY_WITH_ALTERNATE_AGENT_STATUSES and user_agent != ALTERNATE_USER_AGENT:
                logger.info(f"[Crawler] HTTP {response.status_code} for {url}, retrying with alternate User-Agent")
                response = self.session.get(url, headers=self._headers(ALTERNATE_USER_AGENT),
                                            timeout=self.page_timeout, allow_redirects=True)
        except requests.exceptions.RequestException as req_err:
            raise PageFetchError(f"Request failed for {url}: {req_err}") from req_err

        if response.status_code != 200:
            raise PageFetchError(f"HTTP {response.status_code} for {url}")
        content_type = response.headers.get('Content-Type', '').lower()
        if content_type and 'html' not in content_type:
            logger.info(f"[Crawler] Skipping non-HTML content at {url} ({content_type})")
            return None
        if response.encoding is None:
            response.encoding = response.apparent_encoding or 'utf-8'
        return response.text[:MAX_HTML_CONTENT_LENGTH]

    def crawl(self, url: str, max_pages: int = 20, max_depth: int = 2) -> CrawlResult:
        url = normalize_url(url)
        try:
            domain = urlparse(url).hostname or ""
        except ValueError:
            domain = ""
        if not domain:
            logger.error(f"[Crawler] Invalid URL, cannot determine domain: {url}")
            return CrawlResult(success=False, error=f"Invalid URL: {url}")

        logger.info(f"[Crawler] Starting crawl of {url} (domain={domain}, max_pages={max_pages}, max_depth={max_depth})")
        started = self.clock()
        queue = collections.deque([(url, 0)])
        queued = {url}
        visited = set()
        chunks = []
        page_count = 0
        failures = 0
        last_error = None
        abort_error = None
        abort_after = failure_threshold(max_pages)
        timed_out = False

        while queue and len(visited) < max_pages:
            elapsed = self.clock() - started
            if elapsed > self.max_crawl_seconds:
                logger.warning(f"[Crawler] Time limit of {self.max_crawl_seconds}s reached after {elapsed:.1f}s; stopping with {page_count} pages")
                timed_out = True
                break
            current_url, depth = queue.popleft()
            queued.discard(current_url)
            if current_url in visited or depth > max_depth:
                continue
            visited.add(current_url)
            logger.debug(f"[Crawler] Fetching {current_url} (depth {depth})")

            try:
                html = self.fetch_page(current_url)
                if html is None:
                    continue
                text = extract_text(html)
            except PageFetchError as fetch_err:
                failures += 1
                last_error = str(fetch_err)
                logger.warning(f"[Crawler] {fetch_err} (failure {failures})")
            except Exception as extract_err:
                failures += 1
                last_error = f"Text extraction failed for {current_url}: {extract_err}"
                logger.error(f"[Crawler] {last_error}", exc_info=True)
            else:
                if len(text) >= MIN_MEANINGFUL_TEXT_LENGTH:
                    page_count += 1
                    chunks.append(page_marker(current_url) + text)
                    logger.info(f"[Crawler] Collected page {page_count}/{max_pages}: {current_url} ({len(text)} chars)")
                else:
                    logger.debug(f"[Crawler] Too little text on {current_url} ({len(text)} chars); not counted")

                if depth < max_depth:
                    self._enqueue_links(html, domain, current_url, depth + 1, queue, queued, visited)
                continue

            if page_count == 0 and failures >= abort_after:
                abort_error = (f"Could not access {domain}: {failures} pages failed to load or extract "
                               f"without a single successful page. Last error: {last_error}")
                logger.error(f"[Crawler] {abort_error}")
                break

        if page_count == 0:
            if timed_out:
                return CrawlResult(success=False, domain=domain,
                                   error=f"Could not access {domain}: crawl time limit of {self.max_crawl_seconds}s "
                                         f"reached before any page was collected")
            fallback_text = self._fallback_fetch(url)
            if fallback_text:
                chunks.append(page_marker(url) + fallback_text)
                page_count = 1
            else:
                error = abort_error or (f"Could not access or extract content from {domain}"
                                        + (f": {last_error}" if last_error else ". The site may block crawlers or have no readable text."))
                return CrawlResult(success=False, domain=domain, error=error)

        logger.info(f"[Crawler] Crawl of {domain} finished: {page_count} pages collected, {len(visited)} visited, "
                    f"{failures} failures, {self.clock() - started:.1f}s")
        return CrawlResult(success=True, text_content="".join(chunks), page_count=page_count, domain=domain)

    def _enqueue_links(self, html, domain, page_url, depth, queue, queued, visited):
        try:
            links = extract_links(html, domain, page_url)
        except Exception as link_err:
            logger.warning(f"[Crawler] Link extraction failed for {page_url}: {link_err}")
            return
        prioritized = []
        for link in links:
            if link in visited or link in queued:
                continue
            queued.add(link)
            if self.scorer(link) > 0:
                prioritized.append((link, depth))
            else:
                queue.append((link, depth))
        # extendleft reverses, keep discovery order among prioritised links
        queue.extendleft(reversed(prioritized))

    def _fallback_fetch(self, url: str) -> str | None:
        logger.info(f"[Crawler] No pages collected; trying direct fetch of {url} with alternate User-Agent")
        try:
            html = self.fetch_page(url, user_agent=ALTERNATE_USER_AGENT)
            if html is None:
                return None
            text = extract_text(html)
        except PageFetchError as fetch_err:
            logger.warning(f"[Crawler] Fallback fetch failed: {fetch_err}")
            return None
        except Exception as e:
            logger.error(f"[Crawler] Fallback extraction failed for {url}: {e}", exc_info=True)
            return None
        if len(text) > MIN_FALLBACK_TEXT_LENGTH:
            logger.info(f"[Crawler] Fallback fetch of {url} succeeded ({len(text)} chars)")
            return text
        logger.warning(f"[Crawler] Fallback fetch of {url} returned only {len(text)} chars")
        return None
