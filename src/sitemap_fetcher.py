"""
1.0 Sitemap Fetcher Module
Fetches sitemap indexes, child sitemaps and RSS feeds over HTTP.

Key features:
- GET for document bodies, HEAD for Last-Modified freshness checks
- No retries: a failed child fetch is picked up again on the next run
- Configurable timeout and user agent
- Session reuse for connection pooling
- Local paths for documents this project published itself
- Simple download delay for politeness
"""

import requests
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Any

from src.models import FetchResult

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "CucumberSitemapSync/1.0"


class FetchError(RuntimeError):
    """A document the run cannot proceed without could not be fetched."""


def parse_http_date(value: str) -> datetime:
    """
    Parse an RFC 7231 HTTP-date (e.g. 'Wed, 21 Oct 2015 07:28:00 GMT').

    Raises:
        ValueError: if the header cannot be parsed
    """
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, IndexError) as e:
        raise ValueError(f"Invalid HTTP date: {value!r}") from e
    if parsed is None:
        raise ValueError(f"Invalid HTTP date: {value!r}")
    if parsed.tzinfo is None:
        # '-0000' zone yields a naive datetime
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SitemapFetcher:
    """
    2.0 SitemapFetcher Class
    Document source for the sync pipeline.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        """
        2.1 Initialize the SitemapFetcher.

        Args:
            config: Configuration dictionary with optional keys:
                - user_agent: Custom user agent string
                - timeout: Request timeout in seconds (default: 30)
                - download_delay: Delay between requests in seconds (default: 0)
            session: Optional pre-built requests.Session
        """
        # 2.1.1 Extract config values with defaults
        config = config or {}

        self.user_agent = config.get("user_agent", DEFAULT_USER_AGENT)
        if not isinstance(self.user_agent, str) or not self.user_agent.strip():
            self.user_agent = DEFAULT_USER_AGENT
            logger.warning(f"Invalid user_agent in config. Using default: {self.user_agent}")

        self.timeout = config.get("timeout", 30)
        self.download_delay = float(config.get("download_delay", 0) or 0)

        # 2.1.2 Track requests for delay logic
        self.request_count = 0
        self.last_request_time = 0.0

        # 2.1.3 Create session
        self.session = session or self._create_session()

        logger.info(
            f"SitemapFetcher initialized: "
            f"User-Agent={self.user_agent[:50]}..., "
            f"timeout={self.timeout}s, "
            f"delay={self.download_delay}s"
        )

    def _create_session(self) -> requests.Session:
        """
        2.2 Create a requests Session with the configured user agent.
        """
        session = requests.Session()
        session.headers.update({"User-Agent": self.user_agent})
        return session

    def _apply_politeness_delay(self) -> None:
        """
        2.3 Apply delay between requests for politeness.
        """
        if self.request_count == 0:
            self.request_count += 1
            self.last_request_time = time.time()
            return

        elapsed = time.time() - self.last_request_time
        wait_time = max(0.0, self.download_delay - elapsed)

        if wait_time > 0:
            time.sleep(wait_time)

        self.request_count += 1
        self.last_request_time = time.time()

    def fetch(self, url: str, timeout: Optional[int] = None) -> FetchResult:
        """
        2.4 GET a document.

        Never raises for HTTP or network failures; the outcome is in the
        returned FetchResult so callers can decide whether it is fatal.
        """
        # 2.4.1 Validate URL
        if not url or not url.startswith(("http://", "https://")):
            logger.error(f"Invalid URL: {url}")
            return FetchResult(url=url, error="Invalid URL")

        # 2.4.2 Apply politeness delay
        self._apply_politeness_delay()

        timeout = timeout or self.timeout
        logger.info(f"Fetching: {url}")

        try:
            response = self.session.get(url, timeout=timeout)
        except requests.exceptions.Timeout:
            logger.error(f"Timeout fetching {url} after {timeout}s")
            return FetchResult(url=url, error=f"Timeout after {timeout}s")
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error fetching {url}: {e}")
            return FetchResult(url=url, error=str(e))

        # Without a declared charset requests falls back to ISO-8859-1 for text/xml
        if "charset" not in response.headers.get("Content-Type", "").lower():
            response.encoding = "utf-8"

        result = FetchResult(
            url=url,
            status_code=response.status_code,
            content=response.text,
            last_modified=response.headers.get("Last-Modified"),
        )
        if result.ok:
            logger.info(
                f"Successfully fetched {url} "
                f"(status={response.status_code}, size={len(result.content):,} bytes)"
            )
        else:
            logger.warning(f"Failed to fetch {url}: status={response.status_code}")
        return result

    def fetch_document(self, url: str) -> str:
        """
        2.5 GET a document the run depends on.

        Raises:
            FetchError: if no successful response was received
        """
        result = self.fetch(url)
        if not result.ok:
            detail = result.error or f"status={result.status_code}"
            raise FetchError(f"Could not fetch required document {url}: {detail}")
        return result.content

    def fetch_last_modified(self, url: str, timeout: Optional[int] = None) -> Optional[datetime]:
        """
        2.6 HEAD a URL and return its Last-Modified header as a datetime.

        Returns:
            None if the header is absent

        Raises:
            FetchError: on network failure
            ValueError: if the header is present but malformed
        """
        self._apply_politeness_delay()
        timeout = timeout or self.timeout

        try:
            response = self.session.head(url, timeout=timeout, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            raise FetchError(f"HEAD request failed for {url}: {e}") from e

        # requests headers are case-insensitive
        header = response.headers.get("Last-Modified")
        if not header:
            logger.info(f"No Last-Modified header for {url}")
            return None

        last_modified = parse_http_date(header)
        logger.debug(f"Last-Modified for {url}: {last_modified.isoformat()}")
        return last_modified

    def read_local(self, path: str) -> str:
        """
        2.7 Read a previously written document from disk.
        """
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def load_document(self, location: str) -> str:
        """
        2.8 Load a required document from an http(s) URL or a local path.

        Lets a run compare against the files it published last time instead
        of the live site.

        Raises:
            FetchError: if an http(s) document could not be fetched
            OSError: if a local file cannot be read
        """
        if location.startswith(("http://", "https://")):
            return self.fetch_document(location)
        logger.info(f"Reading local document: {location}")
        return self.read_local(location)


# Example usage for testing
if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    fetcher = SitemapFetcher(config={"user_agent": "TestBot/1.0", "timeout": 10})

    test_url = "https://cucumber.io/sitemap.xml"
    result = fetcher.fetch(test_url)

    if result.ok:
        logger.info(f"Fetched {len(result.content):,} bytes from {test_url}")
    else:
        logger.error(f"Failed to fetch {test_url}")
