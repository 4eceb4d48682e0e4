import logging
from types import SimpleNamespace

import pytest

from site_trainer.exceptions import LLMError, LLMTransportError
from site_trainer.generator import TRUNCATION_MARKER, ContentGenerator, truncate_content
from site_trainer.parsing import FALLBACK_SUMMARY
from site_trainer.tokens import count_tokens

from test_cases.fakes import FakeOpenAI, connection_error, faq_payload, server_error


@pytest.fixture
def sleeps():
    return []


def make_generator(client, sleeps, **kwargs):
    return ContentGenerator(client, sleep=sleeps.append, **kwargs)


def test_combined_generation(sleeps):
    client = FakeOpenAI(faq_payload(100))
    result = make_generator(client, sleeps).generate("Acme builds widgets.", "example.com")

    assert result["summary"] == "Acme builds widgets."
    assert len(result["faqs"]) == 100
    assert all(faq["id"] and faq["question"] and faq["answer"] and faq["category"] for faq in result["faqs"])
    request = client.calls[0]
    assert request["model"] == "gpt-4o-mini"
    assert "response_format" not in request
    assert "example.com" in request["messages"][1]["content"]
    assert sleeps == []


def test_fenced_reply_is_recovered(sleeps):
    client = FakeOpenAI("```json\n" + faq_payload(2) + "\n```")
    result = make_generator(client, sleeps).generate("text", "example.com")
    assert len(result["faqs"]) == 2


def test_prose_reply_falls_back(sleeps):
    client = FakeOpenAI("I'm sorry, I cannot help with that.")
    result = make_generator(client, sleeps).generate("text", "example.com")

    assert result["summary"] == FALLBACK_SUMMARY
    assert len(result["faqs"]) == 1
    assert result["faqs"][0]["id"] == "faq-1"


def test_transport_errors_are_retried_with_backoff(sleeps):
    client = FakeOpenAI(connection_error(), server_error(), faq_payload(3))
    result = make_generator(client, sleeps).generate("text")

    assert len(result["faqs"]) == 3
    assert len(client.calls) == 3
    assert sleeps == [2.0, 4.0]


def test_retries_exhausted(sleeps):
    client = FakeOpenAI(connection_error())
    with pytest.raises(LLMTransportError):
        make_generator(client, sleeps).generate("text")
    assert len(client.calls) == 3
    assert sleeps == [2.0, 4.0]


def test_empty_choices(sleeps):
    client = FakeOpenAI(SimpleNamespace(choices=[], usage=None))
    with pytest.raises(LLMError):
        make_generator(client, sleeps).generate("text")
    assert sleeps == []


def test_missing_client(sleeps):
    with pytest.raises(LLMError, match="not initialized"):
        make_generator(None, sleeps).generate("text")


def test_long_content_is_truncated(sleeps):
    client = FakeOpenAI(faq_payload(1))
    make_generator(client, sleeps).generate("x" * 70000, "example.com")

    user_message = client.calls[0]["messages"][1]["content"]
    assert TRUNCATION_MARKER in user_message
    assert "x" * 64000 in user_message
    assert "x" * 64001 not in user_message


def test_split_mode(sleeps, caplog):
    client = FakeOpenAI("A prose summary of Acme.", faq_payload(63))
    generator = make_generator(client, sleeps, mode="split")
    with caplog.at_level(logging.WARNING, logger="site_trainer.generator"):
        result = generator.generate("text", "example.com")

    assert result["summary"] == "A prose summary of Acme."
    assert len(result["faqs"]) == 63
    assert "Expected 100 FAQs, but got 63" in caplog.text
    assert "response_format" not in client.calls[0]
    assert client.calls[1]["response_format"] == {"type": "json_object"}


def test_split_mode_unreadable_faqs(sleeps):
    client = FakeOpenAI("Summary.", "not json at all")
    result = make_generator(client, sleeps, mode="split").generate("text")
    assert result["summary"] == "Summary."
    assert [faq["id"] for faq in result["faqs"]] == ["faq-1"]


def test_unknown_mode():
    with pytest.raises(ValueError):
        ContentGenerator(FakeOpenAI("{}"), mode="parallel")


def test_truncate_content():
    assert truncate_content("short", 10) == "short"
    assert truncate_content("abcdef", 3) == "abc" + TRUNCATION_MARKER


def test_count_tokens():
    assert count_tokens("") == 0
    assert count_tokens("abc") == 1
    assert count_tokens("abcdefgh") == 2
    tokenizer = SimpleNamespace(encode=lambda text: text.split())
    assert count_tokens("one two three", tokenizer) == 3
