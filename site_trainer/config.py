import os
import logging
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'

# --- Crawling Constants ---
BROWSER_USER_AGENT = ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
                      '(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36')
ALTERNATE_USER_AGENT = ('Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 '
                        '(KHTML, like Gecko) Version/17.4 Safari/605.1.15')
DEFAULT_ACCEPT = 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'
DEFAULT_ACCEPT_LANGUAGE = 'en-US,en;q=0.9,de;q=0.8'
PAGE_FETCH_TIMEOUT = 20
MAX_CRAWL_SECONDS = 180
MIN_MEANINGFUL_TEXT_LENGTH = 50
MIN_FALLBACK_TEXT_LENGTH = 100
MAX_FAILURES_BEFORE_ABORT = 10
MAX_HTML_CONTENT_LENGTH = 3500000
MAX_LINKS_PER_PAGE = 100
DEFAULT_MAX_PAGES = 20
DEFAULT_MAX_DEPTH = 2

# --- LLM Constants ---
OPENAI_MODEL = "gpt-4o-mini"
CHARS_PER_TOKEN = 4
COMBINED_PROMPT_TOKEN_BUDGET = 16000
SPLIT_PROMPT_CHAR_BUDGET = 32000
TARGET_FAQ_COUNT = 100
MAX_RESPONSE_TOKENS_COMBINED = 12000
MAX_RESPONSE_TOKENS_SUMMARY = 1500
MAX_RESPONSE_TOKENS_FAQS = 8000
LLM_MAX_RETRIES = 2
LLM_BACKOFF_SECONDS = 2.0

JOBS_TABLE = "ai_training_jobs"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    openai_api_key: str | None = None
    openai_model: str = OPENAI_MODEL
    openai_timeout: float = 120.0
    generation_mode: str = "combined"  # "combined" or "split"
    llm_max_retries: int = LLM_MAX_RETRIES
    llm_backoff_seconds: float = LLM_BACKOFF_SECONDS

    page_fetch_timeout: float = PAGE_FETCH_TIMEOUT
    max_crawl_seconds: float = MAX_CRAWL_SECONDS
    default_max_pages: int = DEFAULT_MAX_PAGES
    default_max_depth: int = DEFAULT_MAX_DEPTH

    job_store: str = "memory"  # "memory" or "supabase"
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None

    use_tiktoken: bool = True
    port: int = 5000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", OPENAI_MODEL),
            openai_timeout=float(os.getenv("OPENAI_TIMEOUT", "120")),
            generation_mode=os.getenv("GENERATION_MODE", "combined").strip().lower(),
            llm_max_retries=int(os.getenv("LLM_MAX_RETRIES", str(LLM_MAX_RETRIES))),
            llm_backoff_seconds=float(os.getenv("LLM_BACKOFF_SECONDS", str(LLM_BACKOFF_SECONDS))),
            page_fetch_timeout=float(os.getenv("CRAWL_PAGE_TIMEOUT", str(PAGE_FETCH_TIMEOUT))),
            max_crawl_seconds=float(os.getenv("CRAWL_MAX_SECONDS", str(MAX_CRAWL_SECONDS))),
            default_max_pages=int(os.getenv("DEFAULT_MAX_PAGES", str(DEFAULT_MAX_PAGES))),
            default_max_depth=int(os.getenv("DEFAULT_MAX_DEPTH", str(DEFAULT_MAX_DEPTH))),
            job_store=os.getenv("JOB_STORE", "memory").strip().lower(),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
            use_tiktoken=_env_bool("USE_TIKTOKEN", True),
            port=int(os.getenv("PORT", "5000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
