"""Shallow same-origin crawl of a company website.

The crawl is breadth-1: load the seed page, pick a bounded set of
relevant internal links from it, and extract each of those pages once. There
is no frontier or recursion.
"""

import time
from typing import Iterable, List, Sequence
from urllib.parse import urldefrag, urljoin, urlparse

import logfire

from discovery_service.config import Settings, get_settings
from discovery_service.constants import NON_HTML_EXTENSIONS, RELEVANT_PATH_KEYWORDS
from discovery_service.models.scraper_models import PageRecord
from discovery_service.services.browser import (
    BrowserDriver,
    BrowserError,
    BrowserLauncher,
    BrowserPage,
    open_browser,
    open_page,
)
from discovery_service.services.content_extractor import extract_page_text

# Resolved absolute hrefs of every anchor on the page
COLLECT_LINKS_SCRIPT = (
    "return Array.from(document.querySelectorAll('a[href]'), a => a.href);"
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


class SeedPageError(Exception):
    """Raised when the seed page cannot be loaded; fatal for the request."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to load {url}: {reason}")


def origin_of(url: str) -> str | None:
    """Return ``scheme://host[:port]`` for an http(s) URL, else None.

    Default ports are dropped so ``https://a.com:443`` and ``https://a.com``
    share an origin.
    """
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return None
    scheme = parsed.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not parsed.hostname:
        return None
    host = parsed.hostname.lower()
    if port is None or port == _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def normalize_url(url: str) -> str:
    """Normalize URL for deduplication.

    Strips fragments and trailing slashes while preserving query strings.
    """
    parsed = urlparse(url)
    path = parsed.path.rstrip("/") or "/"
    normalized = f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}"
    if parsed.query:
        normalized += "?" + parsed.query
    return normalized


def _matches_keyword(url: str, keywords: Sequence[str]) -> bool:
    parsed = urlparse(url)
    # Path and query only; a host like aboutacme.com would otherwise match every link
    haystack = f"{parsed.path}?{parsed.query}".lower()
    return any(keyword in haystack for keyword in keywords)


def discover_relevant_links(
    hrefs: Iterable[str | None],
    seed_url: str,
    *,
    limit: int,
    keywords: Sequence[str] = RELEVANT_PATH_KEYWORDS,
) -> List[str]:
    """Pick the relevant same-origin links from a page's anchors.

    Keywords are matched against the path and query only, so a domain that
    happens to contain "about" does not make every link relevant.

    Args:
        hrefs: Anchor hrefs as found on the seed page (absolute or relative)
        seed_url: The seed URL; its origin is the crawl boundary
        limit: Maximum number of links to return
        keywords: Path keywords marking a page as relevant

    Returns:
        Absolute, fragment-free URLs in discovery order, without the seed
    """
    base_origin = origin_of(seed_url)
    if base_origin is None or limit <= 0:
        return []

    seen = {normalize_url(seed_url)}
    relevant: List[str] = []

    for href in hrefs:
        href = (href or "").strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        try:
            absolute, _ = urldefrag(urljoin(base_origin + "/", href))
        except ValueError:
            continue
        if origin_of(absolute) != base_origin:
            continue

        path_lower = urlparse(absolute).path.lower()
        if any(path_lower.endswith(ext) for ext in NON_HTML_EXTENSIONS):
            continue

        normalized = normalize_url(absolute)
        if normalized in seen:
            continue
        seen.add(normalized)

        if _matches_keyword(absolute, keywords):
            relevant.append(absolute)
            if len(relevant) >= limit:
                break

    return relevant


class SiteCrawler:
    """Load a seed page, discover relevant pages, and extract each one.

    Components can be injected for testing: pass a launcher that returns a
    fake BrowserDriver to run the crawl without Chrome.
    """

    def __init__(
        self,
        launcher: BrowserLauncher,
        settings: Settings | None = None,
    ):
        """Initialize the crawler.

        Args:
            launcher: Coroutine function returning a new BrowserDriver
            settings: Optional settings override (defaults to get_settings())
        """
        self._launcher = launcher
        self._settings = settings or get_settings()

    async def crawl(self, seed_url: str) -> List[PageRecord]:
        """Crawl ``seed_url`` and return the successfully extracted pages.

        Args:
            seed_url: Absolute http(s) URL of the company homepage

        Returns:
            PageRecords, seed first then discovered pages in discovery order.
            An empty list means every page failed extraction.

        Raises:
            SeedPageError: If the seed page cannot be loaded
            BrowserError: If the browser cannot be launched
        """
        start_time = time.time()
        logfire.info(
            "Starting site crawl",
            url=seed_url,
            max_discovered_pages=self._settings.max_discovered_pages,
        )

        records: List[PageRecord] = []
        async with open_browser(self._launcher) as browser:
            async with open_page(browser) as seed_page:
                hrefs = await self._load_seed(seed_page, seed_url)
                links = discover_relevant_links(
                    hrefs, seed_url, limit=self._settings.max_discovered_pages
                )
                logfire.info(
                    "Relevant pages discovered",
                    url=seed_url,
                    anchor_count=len(hrefs),
                    discovered=links,
                )
                seed_record = await self._extract(seed_page, seed_url)
                if seed_record is not None:
                    records.append(seed_record)

            for url in links:
                record = await self._fetch_page(browser, url)
                if record is not None:
                    records.append(record)

        logfire.info(
            "Site crawl completed",
            url=seed_url,
            pages_attempted=1 + len(links),
            pages_scraped=len(records),
            total_time_ms=(time.time() - start_time) * 1000,
        )
        return records

    async def _load_seed(self, page: BrowserPage, seed_url: str) -> List[str]:
        try:
            await page.navigate(seed_url, self._settings.seed_navigation_timeout_seconds)
            hrefs = await page.evaluate(COLLECT_LINKS_SCRIPT)
        except BrowserError as e:
            logfire.error("Seed page failed to load", url=seed_url, error=str(e))
            raise SeedPageError(seed_url, str(e)) from e
        return [h for h in (hrefs or []) if isinstance(h, str)]

    async def _fetch_page(self, browser: BrowserDriver, url: str) -> PageRecord | None:
        try:
            async with open_page(browser) as page:
                await page.navigate(url, self._settings.page_navigation_timeout_seconds)
                return await self._extract(page, url)
        except Exception as e:
            logfire.warning("Skipping page after fetch error", url=url, error=str(e))
            return None

    async def _extract(self, page: BrowserPage, url: str) -> PageRecord | None:
        try:
            text, html = await extract_page_text(
                page,
                selector_timeout=self._settings.content_selector_timeout_seconds,
                settle_delay=self._settings.settle_delay_seconds,
            )
        except Exception as e:
            logfire.warning("Skipping page after extraction error", url=url, error=str(e))
            return None

        logfire.info("Page extracted", url=url, content_length=len(text))
        return PageRecord(url=url, content=text, raw_html=html)
