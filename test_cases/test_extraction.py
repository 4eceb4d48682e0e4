import pytest

from site_trainer.extraction import (
    GENERAL_CONTENT_HEADER, JOB_DETAILS_HEADER, extract_links, extract_text, is_content_link,
    job_link_score, neutral_link_score,
)

CAREERS_PAGE = """
<html><head><title>Acme</title><style>body { color: red; }</style></head>
<body>
  <header>Site header text</header>
  <nav><a href="/">Menu</a></nav>
  <h1>Acme Careers</h1>
  <p>General intro about the company and its long history.</p>
  <div class="job-description">
    <p>Senior Python Developer wanted for our Berlin office.</p>
    <ul><li>Five years of Python experience</li><li>Team player</li></ul>
  </div>
  <script>var tracking = "evil";</script>
  <footer>Copyright footer</footer>
</body></html>
"""


def test_strips_scripts_styles_and_chrome():
    text = extract_text(CAREERS_PAGE)
    for unwanted in ("evil", "color: red", "Site header text", "Menu", "Copyright footer"):
        assert unwanted not in text


def test_job_sections_come_before_general_content():
    text = extract_text(CAREERS_PAGE)
    assert text.startswith(JOB_DETAILS_HEADER)
    job_index = text.index("Senior Python Developer")
    general_index = text.index(GENERAL_CONTENT_HEADER)
    assert job_index < general_index
    assert text.index("General intro about the company") > general_index
    assert "### Acme Careers" in text
    assert "• Five years of Python experience" in text


def test_page_without_job_sections_has_no_headers():
    html = "<h1>Welcome</h1><p>We build widgets.</p><ul><li>Fast delivery</li></ul>"
    assert extract_text(html) == "### Welcome\n\nWe build widgets.\n\n• Fast delivery"


def test_short_job_section_is_ignored():
    html = '<div class="job-details">Apply now</div><p>Plenty of other content on this page.</p>'
    assert JOB_DETAILS_HEADER not in extract_text(html)


def test_secondary_headings_and_line_breaks():
    html = "<h2>Benefits</h2><p>Line one<br>Line two</p>"
    assert extract_text(html) == "## Benefits\n\nLine one\nLine two"


def test_entities_are_decoded():
    html = "<p>Tom &amp; Jerry&nbsp;Ltd &#169; 2024</p>"
    assert extract_text(html) == "Tom & Jerry Ltd © 2024"


def test_comments_are_dropped():
    assert extract_text("<p>Visible<!-- hidden note --></p>") == "Visible"


@pytest.mark.parametrize("html", [
    CAREERS_PAGE,
    "<h1>Welcome</h1><p>We build widgets.</p><ul><li>Fast delivery</li></ul>",
    "Just some plain text.\n\nWith two paragraphs.",
    "<p>Use a &lt;b&gt; tag for bold &amp;amp; AT&amp;T &amp;copy; notes.</p>",
    "<p>Escaped comment &lt;!-- kept --&gt; and &amp;#169; stay text.</p>",
])
def test_extraction_is_idempotent(html):
    once = extract_text(html)
    assert extract_text(once) == once


def test_empty_input():
    assert extract_text("") == ""


def test_extract_links_applies_domain_and_content_rules():
    html = """
    <a href="/contact">Contact</a>
    <a href="team.html">Team</a>
    <a href="https://example.com/contact#form">Contact form</a>
    <a href="https://other.org/x">Elsewhere</a>
    <a href="https://sub.example.com/y">Subdomain</a>
    <a href="#top">Top</a>
    <a href="javascript:void(0)">Click</a>
    <a href="mailto:hr@example.com">Mail</a>
    <a href="tel:+49301234">Call</a>
    <a href="/brochure.pdf">Brochure</a>
    <a href="/logo.PNG">Logo</a>
    <a href="/wp-admin/">Admin</a>
    <a href="/cart">Cart</a>
    <a href="http://example.com/plain">Plain http</a>
    """
    links = extract_links(html, "example.com", "https://example.com/about/")
    assert links == [
        "https://example.com/contact",
        "https://example.com/about/team.html",
        "http://example.com/plain",
    ]


def test_extract_links_caps_results():
    html = "".join(f'<a href="/page-{i}">Page {i}</a>' for i in range(150))
    links = extract_links(html, "example.com", "https://example.com/")
    assert len(links) == 100
    assert links[0] == "https://example.com/page-0"
    assert len(set(links)) == 100


def test_extract_links_without_domain():
    assert extract_links('<a href="/a">A</a>', "", "https://example.com/") == []


@pytest.mark.parametrize("url,expected", [
    ("https://example.com/about", True),
    ("https://example.com/feed/", False),
    ("https://example.com/static/app.js", False),
    ("https://example.com/account", False),
])
def test_is_content_link(url, expected):
    assert is_content_link(url) is expected


@pytest.mark.parametrize("url,score", [
    ("https://example.com/jobs/123", 1),
    ("https://example.com/careers", 1),
    ("https://example.de/karriere/", 1),
    ("https://example.com/about", 0),
    ("https://example.com/blog/jobsite-review", 0),
])
def test_job_link_score(url, score):
    assert job_link_score(url) == score
    assert neutral_link_score(url) == 0


def test_inline_script_is_removed():
    text = extract_text("<script>evil()</script><p>Hello</p>")
    assert "Hello" in text
    assert "evil" not in text


def test_decoded_markup_is_kept_as_text():
    text = extract_text("<p>Use a &lt;b&gt; tag for bold.</p>")
    assert text == "Use a &lt;b> tag for bold."
    assert extract_text(text) == text
    assert extract_text("<p>R&amp;D &lt; 5 people</p>") == "R&amp;D < 5 people"
