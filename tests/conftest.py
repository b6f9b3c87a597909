"""Shared pytest fixtures and configuration.

Fixture Categories:
1. Fake browser: FakeSite, FakeBrowser, FakePage, fake_launcher
2. Infrastructure: test_settings, mock_settings, mock_logfire
3. HTTP: test_client (FastAPI TestClient with the fake browser injected)

The fake browser implements the BrowserDriver / BrowserPage protocols over
an in-memory url -> html map, so crawler, renderer and endpoint tests run
without Chrome and can assert that every tab and browser was closed.
"""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from contextlib import contextmanager
from typing import Any
from unittest.mock import MagicMock, Mock
from urllib.parse import urljoin

import pytest
import respx
from bs4 import BeautifulSoup

from discovery_service.services.browser import BrowserError, BrowserTimeoutError
from discovery_service.services.content_extractor import DISMISS_OVERLAYS_SCRIPT
from discovery_service.services.site_crawler import COLLECT_LINKS_SCRIPT


FAKE_PDF_BYTES = b"%PDF-1.4\n% fake document\n%%EOF"


# =============================================================================
# Fake browser
# =============================================================================


class FakeSite:
    """In-memory website served by FakePage.

    Attributes:
        pages: url -> html for every reachable page
        timeouts: urls whose navigation raises BrowserTimeoutError
        broken_content: urls whose content() raises BrowserError
        pdf_bytes: what render_pdf returns
        fail_pdf: make render_pdf raise BrowserError
    """

    def __init__(self, pages: dict[str, str] | None = None):
        self.pages: dict[str, str] = dict(pages or {})
        self.timeouts: set[str] = set()
        self.broken_content: set[str] = set()
        self.pdf_bytes: bytes = FAKE_PDF_BYTES
        self.fail_pdf = False
        self.navigations: list[str] = []


class FakePage:
    """BrowserPage over a FakeSite."""

    def __init__(self, browser: "FakeBrowser"):
        self._browser = browser
        self.url: str | None = None
        self.html = ""
        self.closed = False
        self.pdf_options = None

    async def navigate(self, url: str, timeout: float) -> None:
        site = self._browser.site
        site.navigations.append(url)
        if url in site.timeouts:
            raise BrowserTimeoutError(f"Navigation to {url} timed out after {timeout:.0f}s")
        if url not in site.pages:
            raise BrowserError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self.url = url
        self.html = site.pages[url]

    async def evaluate(self, script: str, *args: Any) -> Any:
        if script == COLLECT_LINKS_SCRIPT:
            soup = BeautifulSoup(self.html, "html.parser")
            return [urljoin(self.url or "", a["href"]) for a in soup.find_all("a", href=True)]
        if script == DISMISS_OVERLAYS_SCRIPT:
            return 0
        return None

    async def wait_for_selector(self, selector: str, timeout: float) -> None:
        if not BeautifulSoup(self.html, "html.parser").select(selector):
            raise BrowserTimeoutError(f"Selector {selector!r} not present")

    async def wait_for_network_idle(self, timeout: float) -> None:
        return None

    async def content(self) -> str:
        if self.url in self._browser.site.broken_content:
            raise BrowserError("Target closed")
        return self.html

    async def set_content(self, html: str, timeout: float) -> None:
        self.url = "about:blank"
        self.html = html

    async def render_pdf(self, options) -> bytes:
        if self._browser.site.fail_pdf:
            raise BrowserError("Printing failed")
        self.pdf_options = options
        return self._browser.site.pdf_bytes

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    """BrowserDriver handing out FakePages."""

    def __init__(self, site: FakeSite):
        self.site = site
        self.pages: list[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        if self.closed:
            raise BrowserError("Browser has been closed")
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True

    @property
    def open_pages(self) -> list[FakePage]:
        return [p for p in self.pages if not p.closed]


class FakeLauncher:
    """Async callable launching FakeBrowsers; records every launch."""

    def __init__(self, site: FakeSite):
        self.site = site
        self.browsers: list[FakeBrowser] = []
        self.fail_launch = False

    async def __call__(self) -> FakeBrowser:
        if self.fail_launch:
            raise BrowserError("Failed to launch browser: chromedriver not found")
        browser = FakeBrowser(self.site)
        self.browsers.append(browser)
        return browser

    def all_closed(self) -> bool:
        return all(b.closed and not b.open_pages for b in self.browsers)


SEED_URL = "https://example.com"

SEED_HTML = """
<html>
<head><title>Acme</title><script>window.tracking = "secret";</script></head>
<body>
  <header><nav><a href="/about">About us</a><a href="/">Home</a></nav></header>
  <main>
    <h1>Acme Corp</h1>
    <p>Acme was founded in 1999 by Dr. Jane Smith. Our headquarters are in Austin.</p>
    <a href="/careers">Work with us</a>
    <a href="https://external.com/about">Our partner</a>
    <a href="/random-page">Something else</a>
  </main>
  <footer>Copyright 2024 Acme Corp</footer>
</body>
</html>
"""

ABOUT_HTML = """
<html><body>
  <nav>Menu</nav>
  <main><p>Our mission is to make widgets affordable. We offer a platform for small teams.</p></main>
</body></html>
"""

CAREERS_HTML = """
<html><body>
  <main><p>Our culture rewards curiosity. Join our team of builders.</p></main>
</body></html>
"""

RANDOM_HTML = "<html><body><main><p>Nothing to see here.</p></main></body></html>"


@pytest.fixture
def fake_site():
    """The example company site: seed, /about, /careers and /random-page."""
    return FakeSite(
        {
            SEED_URL: SEED_HTML,
            f"{SEED_URL}/about": ABOUT_HTML,
            f"{SEED_URL}/careers": CAREERS_HTML,
            f"{SEED_URL}/random-page": RANDOM_HTML,
        }
    )


@pytest.fixture
def fake_launcher(fake_site):
    """Launcher serving fake_site."""
    return FakeLauncher(fake_site)


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def test_settings():
    """Settings with no settle delay so extraction tests run instantly."""
    from discovery_service.config import Settings

    return Settings(
        env="local",
        logfire_token=None,
        sentry_dsn=None,
        settle_delay_seconds=0,
        content_selector_timeout_seconds=0.1,
    )


@pytest.fixture
def mock_settings(monkeypatch, test_settings):
    """Patch get_settings everywhere it is imported."""
    for module in (
        "discovery_service.config",
        "discovery_service.logging_config",
        "discovery_service.main",
        "discovery_service.api.dependencies",
        "discovery_service.middleware.rate_limiter",
        "discovery_service.services.browser",
        "discovery_service.services.site_crawler",
        "discovery_service.services.pdf_renderer",
    ):
        monkeypatch.setattr(f"{module}.get_settings", lambda: test_settings)
    return test_settings


@pytest.fixture
def mock_logfire(monkeypatch):
    """
    Replace logfire's logging functions with mocks.

    Returns the mock so tests can assert on log calls, e.g.
    ``mock_logfire.warning.assert_called()``.
    """
    import logfire

    @contextmanager
    def mock_span(*args, **kwargs):
        yield {}

    mock_logfire_module = MagicMock()
    mock_logfire_module.info = Mock()
    mock_logfire_module.warning = Mock()
    mock_logfire_module.error = Mock()
    mock_logfire_module.span = Mock(side_effect=mock_span)
    mock_logfire_module.configure = Mock()
    mock_logfire_module.instrument_fastapi = Mock()

    for attr in ("info", "warning", "error", "span", "configure", "instrument_fastapi"):
        monkeypatch.setattr(logfire, attr, getattr(mock_logfire_module, attr))

    return mock_logfire_module


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset process-wide singletons before and after every test."""
    from discovery_service.api.dependencies import reset_browser_slots
    from discovery_service.middleware.rate_limiter import reset_rate_limiters

    reset_rate_limiters()
    reset_browser_slots()
    yield
    reset_rate_limiters()
    reset_browser_slots()


@pytest.fixture
def respx_mock():
    """Respx mock fixture for HTTP mocking."""
    with respx.mock(assert_all_called=False) as router:
        yield router


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def test_client(mock_settings, mock_logfire, fake_launcher):
    """FastAPI TestClient for E2E tests, browser replaced by fake_launcher."""
    from fastapi.testclient import TestClient

    from discovery_service.api.dependencies import get_browser_launcher
    from discovery_service.main import app

    app.dependency_overrides[get_browser_launcher] = lambda: fake_launcher
    yield TestClient(app)
    app.dependency_overrides.clear()
