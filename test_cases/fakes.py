"""Test doubles for the HTTP session, the OpenAI client and the clock."""
import json
from types import SimpleNamespace

import httpx
import openai
import requests


class FakeResponse:
    def __init__(self, status_code=200, text="", content_type="text/html; charset=utf-8"):
        self.status_code = status_code
        self.text = text
        self.headers = {'Content-Type': content_type} if content_type else {}
        self.encoding = 'utf-8'
        self.apparent_encoding = 'utf-8'


class FakeSession:
    """Serves canned responses by URL. Unknown URLs raise ConnectionError.

    A list value is consumed one entry per request; its last entry repeats.
    """

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []

    def get(self, url, headers=None, timeout=None, allow_redirects=True):
        self.calls.append((url, (headers or {}).get('User-Agent')))
        entry = self.pages.get(url)
        if entry is None:
            raise requests.exceptions.ConnectionError(f"Failed to resolve host for {url}")
        if isinstance(entry, list):
            entry = entry.pop(0) if len(entry) > 1 else entry[0]
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, str):
            return FakeResponse(text=entry)
        return entry

    @property
    def requested_urls(self):
        return [url for url, _agent in self.calls]


class FakeClock:
    def __init__(self, step=0.0):
        self.now = 0.0
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


def make_page(body, title="Test page", links=()):
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return f"<html><head><title>{title}</title></head><body>{body}{anchors}</body></html>"


LONG_PARAGRAPH = ("<p>Acme Corporation builds reliable industrial widgets for customers across Europe "
                  "and has been doing so since 1987.</p>")


def make_completion(content, prompt_tokens=120, completion_tokens=80):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return make_completion(reply)
        return reply


class FakeOpenAI:
    def __init__(self, *replies):
        self.chat = SimpleNamespace(completions=FakeCompletions(replies))

    @property
    def calls(self):
        return self.chat.completions.calls


def connection_error():
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))


def server_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.InternalServerError("upstream error", response=httpx.Response(500, request=request), body=None)


def faq_payload(count, summary="Acme builds widgets."):
    faqs = [{"id": f"q{i}", "question": f"Question {i}?", "answer": f"Answer {i}.", "category": "Company Information"}
            for i in range(1, count + 1)]
    return json.dumps({"summary": summary, "faqs": faqs})


class StubCrawler:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def crawl(self, url, max_pages=20, max_depth=2):
        self.calls.append((url, max_pages, max_depth))
        if self.error:
            raise self.error
        return self.result


class StubGenerator:
    def __init__(self, result=None, error=None, client=object()):
        self.result = result or {"summary": "Acme builds widgets.",
                                 "faqs": [{"id": "faq-1", "question": "What does Acme do?",
                                           "answer": "It builds widgets.", "category": "Company Information"}]}
        self.error = error
        self.client = client
        self.tokenizer = None
        self.calls = []

    def generate(self, text_content, domain=""):
        self.calls.append((text_content, domain))
        if self.error:
            raise self.error
        return self.result
