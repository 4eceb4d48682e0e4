"""HTML to prioritised plain text, and same-domain link discovery.

Both functions are pure: they only look at the HTML they are given.
"""
import re
import logging
from urllib.parse import urljoin, urldefrag, urlparse

from bs4 import BeautifulSoup, Comment

from site_trainer.config import MAX_LINKS_PER_PAGE

logger = logging.getLogger(__name__)

JOB_DETAILS_HEADER = "=== JOB DETAILS ==="
GENERAL_CONTENT_HEADER = "=== GENERAL PAGE CONTENT ==="

REMOVED_TAGS = ["script", "style", "nav", "header", "footer", "aside", "noscript", "template"]
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

MIN_JOB_SECTION_LENGTH = 30
MIN_HEADING_LENGTH = 3
MIN_LIST_ITEM_LENGTH = 10

JOB_SECTION_PATTERN = re.compile(
    r"job[-_ ]?(description|details?|requirements?|posting|offer|content|info)"
    r"|career|stellenangebot|stellenbeschreibung|karriere|vacanc|anforderungsprofil",
    re.IGNORECASE,
)

IGNORED_HREF_PATTERN = re.compile(r"^\s*(javascript|mailto|tel|data|sms|ftp):", re.IGNORECASE)
NON_CONTENT_EXTENSION_PATTERN = re.compile(
    r"\.(css|js|mjs|json|xml|rss|ico|png|jpe?g|gif|bmp|webp|svg|tiff?|avif"
    r"|mp3|wav|ogg|m4a|flac|mp4|m4v|mov|avi|wmv|webm|mkv"
    r"|zip|rar|7z|gz|tgz|tar|bz2|exe|dmg|pdf|woff2?|ttf|eot|otf)$",
    re.IGNORECASE,
)
NON_CONTENT_PATHS = (
    "/wp-admin/", "/wp-login", "/wp-json/", "/admin/", "/login/", "/logout/", "/signin/",
    "/register/", "/account/", "/cart/", "/checkout/", "/basket/", "/feed/", "/xmlrpc",
)

JOB_LINK_PATTERN = re.compile(
    r"/(jobs?|careers?|stellenangebote?|stellen|karriere|jobboerse|jobbörse|offene-stellen"
    r"|vacanc(?:y|ies)|vacatures?|emplois?|empleos?)(?:/|$|[-_.])",
    re.IGNORECASE,
)

# text that html.parser would otherwise read back as markup or a character reference
_REPARSED_AMPERSAND_RE = re.compile(r"&(?=[#A-Za-z])")
_REPARSED_TAG_OPEN_RE = re.compile(r"<(?=[A-Za-z/!?])")


# --- Content Extraction ---

def _normalize_whitespace(text: str) -> str:
    text = text.replace("\xa0", " ")
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _escape_markup(text: str) -> str:
    text = _REPARSED_AMPERSAND_RE.sub("&amp;", text)
    return _REPARSED_TAG_OPEN_RE.sub("&lt;", text)


def _is_job_section(tag) -> bool:
    if tag.name in ("html", "body"):
        return False
    markers = " ".join(tag.get("class") or []) + " " + (tag.get("id") or "")
    return bool(JOB_SECTION_PATTERN.search(markers))


def _unique(items: list[str]) -> list[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def _collect_job_sections(soup) -> list[str]:
    sections = []
    collected = set()
    for tag in soup.find_all(_is_job_section):
        # a matching ancestor already carries this text
        if any(id(parent) in collected for parent in tag.parents):
            continue
        text = _normalize_whitespace(tag.get_text(" ", strip=True))
        if len(text) > MIN_JOB_SECTION_LENGTH:
            collected.add(id(tag))
            sections.append(text)
    return _unique(sections)


def _to_readable_text(soup) -> str:
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for heading in soup.find_all(HEADING_TAGS):
        text = heading.get_text(" ", strip=True)
        marker = "###" if heading.name == "h1" else "##"
        heading.replace_with(f"\n\n{marker} {text}\n\n" if text else "\n")
    for item in reversed(soup.find_all("li")):
        text = item.get_text(" ", strip=True)
        item.replace_with(f"\n• {text}\n" if text else "\n")
    for paragraph in reversed(soup.find_all("p")):
        text = _normalize_whitespace(paragraph.get_text(" "))
        paragraph.replace_with(f"\n{text}\n" if text else "\n")
    return _normalize_whitespace(soup.get_text(" "))


def extract_text(html: str) -> str:
    """Convert raw HTML into prioritised plain text.

    Job-related sections, headings and list items found on the page are
    emitted first under a JOB DETAILS header so that a later token-budget cut
    drops general content before it drops them. Pages without job sections
    produce the cleaned text only. Decoded `<` and `&` that would read back
    as markup are re-escaped, so the output is a fixed point of the function.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for tag in soup(REMOVED_TAGS):
        if not tag.decomposed:  # nested inside an already removed block
            tag.decompose()

    job_sections = _collect_job_sections(soup)
    headings = _unique([
        f"### {text}" for text in (h.get_text(" ", strip=True) for h in soup.find_all(HEADING_TAGS))
        if len(text) >= MIN_HEADING_LENGTH
    ])
    list_items = _unique([
        f"• {text}" for text in (li.get_text(" ", strip=True) for li in soup.find_all("li"))
        if len(text) >= MIN_LIST_ITEM_LENGTH
    ])

    general_text = _to_readable_text(soup)
    if not job_sections:
        return _escape_markup(general_text)

    priority_parts = job_sections + headings + list_items
    priority_text = _normalize_whitespace("\n\n".join(priority_parts))
    return _escape_markup(f"{JOB_DETAILS_HEADER}\n{priority_text}\n\n{GENERAL_CONTENT_HEADER}\n{general_text}")


# --- Link Extraction ---

def is_content_link(url: str) -> bool:
    path = urlparse(url).path.lower()
    if NON_CONTENT_EXTENSION_PATTERN.search(path):
        return False
    probe = path if path.endswith("/") else path + "/"
    return not any(marker in probe for marker in NON_CONTENT_PATHS)


def extract_links(html: str, domain: str, base_url: str, limit: int = MAX_LINKS_PER_PAGE) -> list[str]:
    """Return de-duplicated same-domain content links found in ``html``.

    Relative hrefs are resolved against ``base_url``; fragments are dropped.
    At most ``limit`` links are returned.
    """
    if not html or not domain:
        return []
    domain = domain.lower()
    soup = BeautifulSoup(html, "html.parser")
    links = []
    seen = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#") or IGNORED_HREF_PATTERN.match(href):
            continue
        try:
            absolute_url, _fragment = urldefrag(urljoin(base_url, href))
            parsed = urlparse(absolute_url)
            hostname = parsed.hostname
        except ValueError as e:
            logger.debug(f"Skipping malformed href '{href}' on {base_url}: {e}")
            continue
        if parsed.scheme not in ("http", "https") or hostname != domain:
            continue
        if absolute_url in seen or not is_content_link(absolute_url):
            continue
        seen.add(absolute_url)
        links.append(absolute_url)
        if len(links) >= limit:
            break
    return links


# --- Link Scoring ---

def job_link_score(url: str) -> int:
    """Score job/career listing links above everything else."""
    return 1 if JOB_LINK_PATTERN.search(urlparse(url).path) else 0


def neutral_link_score(url: str) -> int:
    return 0
