import time
import logging

from openai import APIError

from site_trainer.config import (
    CHARS_PER_TOKEN, COMBINED_PROMPT_TOKEN_BUDGET, LLM_BACKOFF_SECONDS, LLM_MAX_RETRIES,
    MAX_RESPONSE_TOKENS_COMBINED, MAX_RESPONSE_TOKENS_FAQS, MAX_RESPONSE_TOKENS_SUMMARY,
    OPENAI_MODEL, SPLIT_PROMPT_CHAR_BUDGET, TARGET_FAQ_COUNT,
)
from site_trainer.exceptions import LLMError, LLMParseError, LLMTransportError
from site_trainer.parsing import (
    SUMMARY_PLACEHOLDER, find_faq_list, extract_json_payload, fallback_result, normalize_faqs,
    normalize_result,
)
from site_trainer.tokens import count_tokens

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... [content truncated due to length]"
GENERATION_MODES = ("combined", "split")

COMBINED_SYSTEM_PROMPT = """You are an expert analyst preparing training material for a recruiting assistant.
You receive text crawled from {source} and/or uploaded documents. Sections marked "=== JOB DETAILS ===" contain job postings and career information and are the most important.
Respond with ONE valid JSON object and nothing else:
{{"summary": "A thorough, well-structured summary with clear section headings covering the company, its mission, products/services, open positions and application process.",
  "faqs": [{{"id": "faq-1", "question": "Question text?", "answer": "Answer text.", "category": "Category Name"}}]}}
Generate up to {faq_count} FAQs grouped by category (e.g. 'Company Information', 'Jobs & Careers', 'Application Process', 'Benefits', 'Products', 'Services').
Base every answer strictly on the provided content. Do not invent facts."""

COMBINED_USER_PROMPT = """Content from {source}:

{content}

Return the JSON object with "summary" and "faqs" now."""

SUMMARY_SYSTEM_PROMPT = ("You are a professional content summarizer. Create a thorough, well-structured summary of the "
                         "website content provided. Focus on company details, mission, products/services, open positions "
                         "and any other relevant information. Organize the summary into clear sections with headings.")

SUMMARY_USER_PROMPT = "Summarize this content ({source}):\n\n{content}"

FAQ_SYSTEM_PROMPT = """Create exactly {faq_count} frequently asked questions and answers about the content provided from {source}.
Group the questions by category (e.g. 'Company Information', 'Jobs & Careers', 'Products', 'Services').
Format your response as a valid JSON object with the structure: {{"faqs": [{{"id": "unique-id", "question": "Question text?", "answer": "Answer text.", "category": "Category Name"}}]}}.
Make sure to generate exactly {faq_count} FAQs total, not more or less."""

FAQ_USER_PROMPT = """Based on this content from {source}:

{content}

Generate exactly {faq_count} FAQs in the specified JSON format. Ensure you create exactly {faq_count} FAQ items total."""


def truncate_content(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    logger.warning(f"Content of {len(text)} chars truncated to {max_chars} chars for the prompt")
    return text[:max_chars] + TRUNCATION_MARKER


def _source_label(domain: str) -> str:
    return domain if domain else "the provided content"


class ContentGenerator:
    """Turns aggregated crawl/document text into a summary and categorised FAQs.

    ``client`` is an ``openai.OpenAI`` instance (or anything exposing
    ``chat.completions.create``). Transport failures are retried here with
    exponential backoff; unreadable replies degrade to a fallback result
    instead of failing.
    """

    def __init__(self, client, model: str = OPENAI_MODEL, mode: str = "combined",
                 max_retries: int = LLM_MAX_RETRIES, backoff_seconds: float = LLM_BACKOFF_SECONDS,
                 sleep=time.sleep, tokenizer=None):
        if mode not in GENERATION_MODES:
            raise ValueError(f"Unknown generation mode '{mode}', expected one of {GENERATION_MODES}")
        self.client = client
        self.model = model
        self.mode = mode
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep
        self.tokenizer = tokenizer

    def generate(self, text_content: str, domain: str = "") -> dict:
        if self.client is None:
            raise LLMError("OpenAI client not initialized.")
        logger.info(f"Generating summary and FAQs for {_source_label(domain)} ({len(text_content)} chars, mode={self.mode})")
        if self.mode == "split":
            summary = self.generate_summary(text_content, domain)
            faqs = self.generate_faqs(text_content, domain)
            return {"summary": summary, "faqs": faqs}
        return self.generate_combined(text_content, domain)

    def generate_combined(self, text_content: str, domain: str = "") -> dict:
        content = truncate_content(text_content, COMBINED_PROMPT_TOKEN_BUDGET * CHARS_PER_TOKEN)
        source = _source_label(domain)
        messages = [
            {"role": "system", "content": COMBINED_SYSTEM_PROMPT.format(source=source, faq_count=TARGET_FAQ_COUNT)},
            {"role": "user", "content": COMBINED_USER_PROMPT.format(source=source, content=content)},
        ]
        raw = self._chat(messages, max_tokens=MAX_RESPONSE_TOKENS_COMBINED, temperature=0.5)
        try:
            outcome = extract_json_payload(raw)
        except LLMParseError as e:
            logger.error(f"Could not parse combined response for {source}: {e}")
            return fallback_result(str(e))
        result = normalize_result(outcome.payload)
        logger.info(f"Generated summary ({len(result['summary'])} chars) and {len(result['faqs'])} FAQs for {source}")
        return result

    def generate_summary(self, text_content: str, domain: str = "") -> str:
        content = truncate_content(text_content, SPLIT_PROMPT_CHAR_BUDGET)
        source = _source_label(domain)
        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": SUMMARY_USER_PROMPT.format(source=source, content=content)},
        ]
        summary = self._chat(messages, max_tokens=MAX_RESPONSE_TOKENS_SUMMARY, temperature=0.5).strip()
        if not summary:
            logger.warning(f"Empty summary returned for {source}")
            return SUMMARY_PLACEHOLDER
        return summary

    def generate_faqs(self, text_content: str, domain: str = "") -> list[dict]:
        content = truncate_content(text_content, SPLIT_PROMPT_CHAR_BUDGET)
        source = _source_label(domain)
        messages = [
            {"role": "system", "content": FAQ_SYSTEM_PROMPT.format(source=source, faq_count=TARGET_FAQ_COUNT)},
            {"role": "user", "content": FAQ_USER_PROMPT.format(source=source, content=content, faq_count=TARGET_FAQ_COUNT)},
        ]
        raw = self._chat(messages, max_tokens=MAX_RESPONSE_TOKENS_FAQS, temperature=0.7, json_mode=True)
        try:
            outcome = extract_json_payload(raw)
        except LLMParseError as e:
            logger.error(f"Could not parse FAQ response for {source}: {e}")
            return fallback_result(str(e))["faqs"]
        faqs = normalize_faqs(find_faq_list(outcome.payload))
        if len(faqs) != TARGET_FAQ_COUNT:
            logger.warning(f"Expected {TARGET_FAQ_COUNT} FAQs, but got {len(faqs)}")
        else:
            logger.info(f"Generated {len(faqs)} FAQs for {source}")
        return faqs

    def _chat(self, messages: list[dict], max_tokens: int, temperature: float, json_mode: bool = False) -> str:
        request_args = {"model": self.model, "messages": messages, "temperature": temperature, "max_tokens": max_tokens}
        if json_mode:
            request_args["response_format"] = {"type": "json_object"}
        prompt_tokens = sum(count_tokens(m["content"], self.tokenizer) for m in messages)

        attempts = self.max_retries + 1
        last_error = None
        for attempt in range(attempts):
            try:
                completion = self.client.chat.completions.create(**request_args)
                return self._read_content(completion, prompt_tokens)
            except APIError as e:
                last_error = e
                if attempt < self.max_retries:
                    delay = self.backoff_seconds * (2 ** attempt)
                    logger.warning(f"OpenAI request failed (attempt {attempt + 1}/{attempts}): {e}. Retrying in {delay:.0f}s")
                    self.sleep(delay)
        logger.error(f"OpenAI request failed after {attempts} attempts: {last_error}")
        raise LLMTransportError(f"OpenAI request failed after {attempts} attempts: {last_error}") from last_error

    def _read_content(self, completion, prompt_tokens: int) -> str:
        choices = getattr(completion, "choices", None)
        if not choices:
            raise LLMError(f"OpenAI returned no choices: {completion!r}"[:500])
        usage = getattr(completion, "usage", None)
        if usage is not None and getattr(usage, "prompt_tokens", None):
            prompt_tokens = usage.prompt_tokens
        completion_tokens = getattr(usage, "completion_tokens", 0) if usage is not None else 0
        logger.info(f"OpenAI call completed. Tokens (P/C): {prompt_tokens}/{completion_tokens}")
        return (choices[0].message.content or "").strip()
