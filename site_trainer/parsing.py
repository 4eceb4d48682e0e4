"""Best-effort extraction of a JSON payload from free-form LLM output.

Each strategy is a pure function that returns the parsed object or None.
``extract_json_payload`` runs them in order and reports which one matched.
"""
import re
import json
import logging
from dataclasses import dataclass
from typing import Any

from site_trainer.exceptions import LLMParseError

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "General"
SUMMARY_PLACEHOLDER = "No summary could be generated from the provided content."
FALLBACK_SUMMARY = ("The AI response could not be read as structured data, so no detailed summary "
                    "is available for this content. Please try training again.")

_FENCED_JSON_RE = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_FENCED_ANY_RE = re.compile(r"```[a-zA-Z0-9_-]*\s*(.*?)```", re.DOTALL)


def _loads(candidate: str) -> Any | None:
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None


def parse_strict(text: str) -> Any | None:
    return _loads((text or "").strip())


def parse_fenced_json(text: str) -> Any | None:
    match = _FENCED_JSON_RE.search(text or "")
    return _loads(match.group(1).strip()) if match else None


def parse_fenced_block(text: str) -> Any | None:
    for match in _FENCED_ANY_RE.finditer(text or ""):
        payload = _loads(match.group(1).strip())
        if isinstance(payload, (dict, list)):
            return payload
    return None


def parse_brace_span(text: str) -> Any | None:
    text = text or ""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    return _loads(text[start:end + 1])


PARSE_STRATEGIES = (
    ("strict", parse_strict),
    ("fenced_json", parse_fenced_json),
    ("fenced_block", parse_fenced_block),
    ("brace_span", parse_brace_span),
)


@dataclass
class ParseOutcome:
    strategy: str
    payload: Any


def extract_json_payload(text: str) -> ParseOutcome:
    """Run the strategies in order; raise LLMParseError if none yields JSON."""
    for name, strategy in PARSE_STRATEGIES:
        payload = strategy(text)
        if isinstance(payload, (dict, list)):
            if name != "strict":
                logger.info(f"Recovered JSON from LLM output using '{name}' strategy")
            return ParseOutcome(strategy=name, payload=payload)
    raise LLMParseError(f"No JSON found in LLM output. First 200 chars: {(text or '')[:200]!r}")


# --- Normalisation ---

def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        for key in ("text", "content", "summary"):
            if isinstance(value.get(key), str):
                return value[key].strip()
    return json.dumps(value, ensure_ascii=False)


def find_faq_list(payload: Any) -> list | None:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return None
    for key in ("faqs", "faq", "FAQs", "questions", "items"):
        if isinstance(payload.get(key), list):
            return payload[key]
    for key, value in payload.items():
        if key != "summary" and isinstance(value, list):
            return value
    return None


def normalize_faqs(raw_faqs: Any) -> list[dict]:
    if not isinstance(raw_faqs, list):
        return []
    faqs = []
    used_ids = set()
    for index, item in enumerate(raw_faqs):
        if not isinstance(item, dict):
            logger.warning(f"Dropping FAQ entry {index + 1}: expected an object, got {type(item).__name__}")
            continue
        faq_id = _as_text(item.get("id")) or f"faq-{index + 1}"
        if faq_id in used_ids:
            faq_id = f"faq-{index + 1}"
        base_id, suffix = faq_id, 2
        while faq_id in used_ids:
            faq_id = f"{base_id}-{suffix}"
            suffix += 1
        used_ids.add(faq_id)
        faqs.append({
            "id": faq_id,
            "question": _as_text(item.get("question")) or f"Question {index + 1}",
            "answer": _as_text(item.get("answer")) or "No answer provided",
            "category": _as_text(item.get("category")) or DEFAULT_CATEGORY,
        })
    return faqs


def normalize_result(payload: Any) -> dict:
    """Coerce a parsed payload into ``{"summary": str, "faqs": [faq, ...]}``."""
    summary = _as_text(payload.get("summary")) if isinstance(payload, dict) else ""
    return {
        "summary": summary or SUMMARY_PLACEHOLDER,
        "faqs": normalize_faqs(find_faq_list(payload)),
    }


def fallback_result(reason: str = "") -> dict:
    answer = ("The AI model returned a response that could not be converted into FAQs. "
              "Retraining usually resolves this.")
    if reason:
        answer += f" Details: {reason[:300]}"
    return {
        "summary": FALLBACK_SUMMARY,
        "faqs": [{
            "id": "faq-1",
            "question": "Why are no detailed FAQs available?",
            "answer": answer,
            "category": DEFAULT_CATEGORY,
        }],
    }
