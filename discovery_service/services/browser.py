"""Headless browser capability used by the crawler and the PDF renderer.

The crawler and renderer only depend on the BrowserDriver / BrowserPage
protocols, so tests can run them against an in-memory fake. The production
implementation drives undetected Chrome through Selenium; its blocking calls
run in a worker thread and are serialised per browser instance because a
WebDriver session can only talk to one tab at a time.

Ownership rules:
- one browser per request (``open_browser``)
- one tab per page (``open_page``)
Both context managers close what they opened on every exit path.
"""

import asyncio
import base64
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

import logfire
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from discovery_service.config import Settings, get_settings
from discovery_service.constants import (
    NETWORK_IDLE_POLL_SECONDS,
    NETWORK_IDLE_QUIET_SECONDS,
    PDF_MARGIN_INCHES,
    PDF_PAPER_HEIGHT_INCHES,
    PDF_PAPER_WIDTH_INCHES,
)


class BrowserError(Exception):
    """Raised when the browser cannot launch, navigate, evaluate or render."""


class BrowserTimeoutError(BrowserError):
    """Raised when a browser step exceeds its timeout."""


@dataclass(frozen=True)
class PdfOptions:
    """Print settings for rendered documents (inches)."""

    paper_width: float = PDF_PAPER_WIDTH_INCHES
    paper_height: float = PDF_PAPER_HEIGHT_INCHES
    margin: float = PDF_MARGIN_INCHES
    print_background: bool = True
    display_header_footer: bool = False

    def to_cdp(self) -> dict[str, Any]:
        """Parameters for the DevTools ``Page.printToPDF`` command."""
        return {
            "paperWidth": self.paper_width,
            "paperHeight": self.paper_height,
            "marginTop": self.margin,
            "marginBottom": self.margin,
            "marginLeft": self.margin,
            "marginRight": self.margin,
            "printBackground": self.print_background,
            "displayHeaderFooter": self.display_header_footer,
            "preferCSSPageSize": False,
        }


LETTER_PDF_OPTIONS = PdfOptions()


class BrowserPage(Protocol):
    """A single browser tab."""

    async def navigate(self, url: str, timeout: float) -> None:
        """Load ``url``; raise BrowserTimeoutError when it takes too long."""
        ...

    async def evaluate(self, script: str, *args: Any) -> Any:
        """Run a JavaScript function body in the page and return its result.

        The script must ``return`` its value; ``args`` are available as
        ``arguments[0]``, ``arguments[1]``...
        """
        ...

    async def wait_for_selector(self, selector: str, timeout: float) -> None:
        """Wait until ``selector`` matches; raise BrowserTimeoutError otherwise."""
        ...

    async def wait_for_network_idle(self, timeout: float) -> None:
        """Wait until the document is loaded and no new resources arrive."""
        ...

    async def content(self) -> str:
        """Return the rendered HTML of the page."""
        ...

    async def set_content(self, html: str, timeout: float) -> None:
        """Replace the page document with ``html``."""
        ...

    async def render_pdf(self, options: PdfOptions) -> bytes:
        """Print the current document to PDF."""
        ...

    async def close(self) -> None:
        """Close the tab."""
        ...


class BrowserDriver(Protocol):
    """A running browser instance."""

    async def new_page(self) -> BrowserPage:
        """Open a fresh tab."""
        ...

    async def close(self) -> None:
        """Shut the browser down, closing every tab."""
        ...


BrowserLauncher = Callable[[], Awaitable[BrowserDriver]]


@asynccontextmanager
async def open_browser(launcher: BrowserLauncher) -> AsyncIterator[BrowserDriver]:
    """Launch a browser and guarantee it is closed when the block exits."""
    browser = await launcher()
    try:
        yield browser
    finally:
        await browser.close()


@asynccontextmanager
async def open_page(browser: BrowserDriver) -> AsyncIterator[BrowserPage]:
    """Open a tab and guarantee it is closed when the block exits."""
    page = await browser.new_page()
    try:
        yield page
    finally:
        await page.close()


# =============================================================================
# Undetected Chrome implementation
# =============================================================================

_NETWORK_STATE_SCRIPT = (
    "return [document.readyState, "
    "performance.getEntriesByType('resource').length];"
)

_WRITE_DOCUMENT_SCRIPT = (
    "document.open(); document.write(arguments[0]); document.close(); return true;"
)


class ChromePage:
    """One Chrome tab, addressed by its WebDriver window handle."""

    def __init__(self, browser: "ChromeBrowser", handle: str):
        self._browser = browser
        self._handle = handle
        self._closed = False

    @property
    def handle(self) -> str:
        return self._handle

    async def navigate(self, url: str, timeout: float) -> None:
        await self._browser.run_in_window(self._handle, self._navigate_sync, url, timeout)

    async def evaluate(self, script: str, *args: Any) -> Any:
        return await self._browser.run_in_window(
            self._handle, lambda driver: driver.execute_script(script, *args)
        )

    async def wait_for_selector(self, selector: str, timeout: float) -> None:
        await self._browser.run_in_window(
            self._handle, self._wait_for_selector_sync, selector, timeout
        )

    async def wait_for_network_idle(self, timeout: float) -> None:
        await self._browser.run_in_window(
            self._handle, self._wait_for_network_idle_sync, timeout
        )

    async def content(self) -> str:
        return await self._browser.run_in_window(
            self._handle, lambda driver: driver.page_source
        )

    async def set_content(self, html: str, timeout: float) -> None:
        await self._browser.run_in_window(
            self._handle, self._set_content_sync, html, timeout
        )

    async def render_pdf(self, options: PdfOptions) -> bytes:
        result = await self._browser.run_in_window(
            self._handle,
            lambda driver: driver.execute_cdp_cmd("Page.printToPDF", options.to_cdp()),
        )
        return base64.b64decode(result.get("data", ""))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._browser.close_window(self._handle)

    @staticmethod
    def _navigate_sync(driver, url: str, timeout: float) -> None:
        driver.set_page_load_timeout(timeout)
        try:
            driver.get(url)
        except TimeoutException as e:
            raise BrowserTimeoutError(
                f"Navigation to {url} timed out after {timeout:.0f}s"
            ) from e

    @staticmethod
    def _wait_for_selector_sync(driver, selector: str, timeout: float) -> None:
        try:
            WebDriverWait(driver, timeout).until(
                EC.presence_of_element_located((By.CSS_SELECTOR, selector))
            )
        except TimeoutException as e:
            raise BrowserTimeoutError(
                f"Selector {selector!r} not present after {timeout:.0f}s"
            ) from e

    @staticmethod
    def _wait_for_network_idle_sync(driver, timeout: float) -> None:
        """Poll until readyState is complete and the resource count stops growing."""
        deadline = time.monotonic() + timeout
        last_count: int | None = None
        quiet_since: float | None = None

        while time.monotonic() < deadline:
            ready_state, resource_count = driver.execute_script(_NETWORK_STATE_SCRIPT)
            now = time.monotonic()
            if ready_state == "complete" and resource_count == last_count:
                if quiet_since is None:
                    quiet_since = now
                elif now - quiet_since >= NETWORK_IDLE_QUIET_SECONDS:
                    return
            else:
                quiet_since = None
            last_count = resource_count
            time.sleep(NETWORK_IDLE_POLL_SECONDS)

        raise BrowserTimeoutError(f"Network did not become idle within {timeout:.0f}s")

    @classmethod
    def _set_content_sync(cls, driver, html: str, timeout: float) -> None:
        cls._navigate_sync(driver, "about:blank", timeout)
        driver.execute_script(_WRITE_DOCUMENT_SCRIPT, html)


class ChromeBrowser:
    """A running undetected-Chrome session.

    The window that exists at launch is never closed by ``close_window`` so
    closing the last content tab cannot end the WebDriver session.
    """

    def __init__(self, driver):
        self._driver = driver
        self._lock = asyncio.Lock()
        self._root_handle = driver.current_window_handle
        self._closed = False

    async def run_in_window(self, handle: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Switch to ``handle`` and run ``fn(driver, *args)`` in a worker thread."""
        async with self._lock:
            return await asyncio.to_thread(self._call_in_window, handle, fn, *args)

    def _call_in_window(self, handle: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            self._driver.switch_to.window(handle)
            return fn(self._driver, *args)
        except BrowserError:
            raise
        except WebDriverException as e:
            raise BrowserError(str(e.msg or e)) from e

    async def new_page(self) -> ChromePage:
        async with self._lock:
            handle = await asyncio.to_thread(self._open_tab)
        return ChromePage(self, handle)

    def _open_tab(self) -> str:
        try:
            self._driver.switch_to.new_window("tab")
            return self._driver.current_window_handle
        except WebDriverException as e:
            raise BrowserError(f"Failed to open tab: {e.msg or e}") from e

    async def close_window(self, handle: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._close_window_sync, handle)

    def _close_window_sync(self, handle: str) -> None:
        if handle == self._root_handle:
            return
        try:
            self._driver.switch_to.window(handle)
            self._driver.close()
            self._driver.switch_to.window(self._root_handle)
        except WebDriverException as e:
            # Tab already gone; quit() in close() still tears everything down
            logfire.warning("Failed to close browser tab", handle=handle, error=str(e))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        async with self._lock:
            await asyncio.to_thread(self._quit_sync)
        logfire.info("Browser closed")

    def _quit_sync(self) -> None:
        try:
            self._driver.quit()
        except (WebDriverException, OSError) as e:
            logfire.warning("Browser quit reported an error", error=str(e))


def _start_chrome_sync(headless: bool, version_main: int | None):
    """Start undetected Chrome.

    Set CHROME_VERSION_MAIN to your Chrome major version (e.g. 143) if you see
    "This version of ChromeDriver only supports Chrome version X".
    """
    import undetected_chromedriver as uc

    options = uc.ChromeOptions()
    for argument in ("--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"):
        options.add_argument(argument)

    kwargs: dict[str, Any] = {"options": options, "headless": headless}
    if version_main is not None:
        kwargs["version_main"] = version_main
    return uc.Chrome(**kwargs)


async def launch_chrome(settings: Settings | None = None) -> ChromeBrowser:
    """Launch a headless Chrome instance.

    Args:
        settings: Optional settings override (defaults to get_settings())

    Returns:
        A ChromeBrowser the caller owns and must close

    Raises:
        BrowserError: If Chrome or chromedriver cannot be started
    """
    settings = settings or get_settings()
    start = time.time()
    try:
        driver = await asyncio.to_thread(
            _start_chrome_sync, settings.browser_headless, settings.chrome_version_main
        )
    except Exception as e:
        logfire.error("Browser launch failed", error=str(e))
        raise BrowserError(f"Failed to launch browser: {e}") from e

    logfire.info(
        "Browser launched",
        headless=settings.browser_headless,
        launch_time_ms=(time.time() - start) * 1000,
    )
    return ChromeBrowser(driver)
