from dataclasses import dataclass
import logging
import time

import requests

from sitesearch.util.html import extract_links, is_http_url, is_non_html_resource

logger = logging.getLogger(__name__)

# Reported when no HTTP exchange took place: a rejected URL or a transport
# failure. Real HTTP statuses, errors included, are passed through as data.
FETCH_ERROR_STATUS = 0
HTTP_OK = 200


@dataclass
class FetchResult:
    url: str
    status_code: int
    content: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status_code == HTTP_OK


class Fetcher:
    """
    Downloads one page per call. Every outbound request is preceded by a fixed
    delay so that a crawl of many threads still treats the target site gently.
    Never raises for network trouble: the caller always gets a FetchResult.
    """

    def __init__(
        self,
        user_agent: str,
        referrer: str,
        *,
        delay: float = 0.7,
        timeout: float = 5.0,
    ) -> None:
        self.headers = {"User-Agent": user_agent, "Referer": referrer}
        self.delay = delay
        self.timeout = timeout

    def fetch(self, url: str) -> FetchResult:
        if not is_http_url(url):
            logger.warning("Skipping invalid URL: %s", url)
            return FetchResult(url, FETCH_ERROR_STATUS, error="Invalid URL")
        if is_non_html_resource(url):
            logger.debug("Skipping non-HTML resource: %s", url)
            return FetchResult(url, FETCH_ERROR_STATUS, error="Not an HTML resource")

        if self.delay > 0:
            time.sleep(self.delay)

        try:
            response = requests.get(
                url,
                headers=self.headers,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.RequestException as e:
            logger.error("Error fetching %s: %s", url, e)
            return FetchResult(url, FETCH_ERROR_STATUS, error=str(e))

        logger.debug("Fetched %s: %d", url, response.status_code)
        return FetchResult(url, response.status_code, response.text or "")

    def extract_links(self, url: str, content: str | None = None) -> set[str]:
        """
        Outbound links of the page at url. If the page body is already at hand
        it is parsed directly; otherwise the page is fetched first.
        """
        if content is None:
            result = self.fetch(url)
            if result.error:
                return set()
            content = result.content
        return extract_links(url, content)
