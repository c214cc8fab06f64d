from bs4 import BeautifulSoup, Tag
import logging
from urllib.parse import urldefrag, urljoin, urlparse

logger = logging.getLogger(__name__)

# Matched anywhere in the lowercased URL, not just at the end, so that
# "report.pdf?download=1" is caught as well.
NON_HTML_EXTENSIONS = (
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".webp",
    ".pdf",
    ".eps",
    ".xlsx",
    ".doc",
    ".pptx",
    ".docx",
    ".zip",
    ".sql",
)


def is_http_url(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def is_non_html_resource(url: str) -> bool:
    lower = url.lower()
    return any(ext in lower for ext in NON_HTML_EXTENSIONS)


def is_crawlable(url: str) -> bool:
    return is_http_url(url) and not is_non_html_resource(url)


def relative_path(url: str) -> str:
    """
    Pages are keyed by the path component of their URL within a site.
    """
    path = urlparse(url).path
    return path or "/"


def extract_links(base_url: str, content: str) -> set[str]:
    """
    Extracts the absolute URLs of all anchors in the HTML content. Fragments
    are dropped so that in-page anchors do not look like new pages. Anything
    that is not an HTTP(S) URL of an HTML-looking resource is left out.
    """
    soup = BeautifulSoup(content, "html.parser")
    links: set[str] = set()
    for a in soup.find_all("a", href=True):
        assert isinstance(a, Tag)
        href = a["href"]
        if not isinstance(href, str) or not href.strip():
            continue

        try:
            absolute, _ = urldefrag(urljoin(base_url, href.strip()))
        except ValueError as e:
            logger.debug("Skipping malformed link %r on %s: %s", href, base_url, e)
            continue

        if not is_crawlable(absolute):
            logger.debug("Skipping link %s on %s", absolute, base_url)
            continue
        links.add(absolute)
    return links


def _soup(content: str) -> BeautifulSoup:
    """
    Parses the content with script and style bodies removed; they are markup,
    not text.
    """
    soup = BeautifulSoup(content, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return soup


def html_to_text(content: str) -> str:
    """
    Plain text of the whole document, whitespace collapsed.
    """
    if not content:
        return ""
    return " ".join(_soup(content).get_text(" ").split())


def extract_body_text(content: str) -> str:
    """
    Plain text of the <body> elements only, so that the title does not leak
    into snippets. Documents without a body fall back to their full text.
    """
    if not content:
        return ""
    soup = _soup(content)
    bodies = soup.find_all("body")
    if not bodies:
        return " ".join(soup.get_text(" ").split())
    return " ".join(" ".join(body.get_text(" ").split()) for body in bodies).strip()


def extract_title(content: str) -> str:
    if not content:
        return ""
    soup = BeautifulSoup(content, "html.parser")
    return " ".join(
        t.get_text(" ", strip=True) for t in soup.find_all("title")
    ).strip()
