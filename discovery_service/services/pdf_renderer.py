"""Render caller-supplied HTML to a Letter-size PDF."""

import time

import logfire

from discovery_service.config import Settings, get_settings
from discovery_service.services.browser import (
    LETTER_PDF_OPTIONS,
    BrowserError,
    BrowserLauncher,
    PdfOptions,
    open_browser,
    open_page,
)

HTML_REQUIRED_MESSAGE = "HTML content is required"


class PdfValidationError(ValueError):
    """Raised when a PDF job is rejected before rendering."""


class PdfRenderError(Exception):
    """Raised when the browser fails to produce a PDF."""


class PdfRenderer:
    """Render HTML documents with the headless browser.

    Each render owns a fresh browser; there is no partial or fallback output.
    """

    def __init__(
        self,
        launcher: BrowserLauncher,
        settings: Settings | None = None,
        options: PdfOptions = LETTER_PDF_OPTIONS,
    ):
        self._launcher = launcher
        self._settings = settings or get_settings()
        self._options = options

    async def render(self, html: str | None) -> bytes:
        """Render ``html`` and return the PDF bytes.

        Raises:
            PdfValidationError: If html is missing or blank
            PdfRenderError: If loading, waiting or printing fails
        """
        if not html or not html.strip():
            raise PdfValidationError(HTML_REQUIRED_MESSAGE)

        timeout = self._settings.pdf_render_timeout_seconds
        start_time = time.time()
        try:
            async with open_browser(self._launcher) as browser:
                async with open_page(browser) as page:
                    await page.set_content(html, timeout)
                    # Fonts and images used for styling must be loaded before printing
                    await page.wait_for_network_idle(timeout)
                    pdf = await page.render_pdf(self._options)
        except BrowserError as e:
            logfire.error("PDF render failed", error=str(e), html_length=len(html))
            raise PdfRenderError(str(e)) from e

        if not pdf:
            logfire.error("PDF render returned an empty document", html_length=len(html))
            raise PdfRenderError("Renderer returned an empty document")

        logfire.info(
            "PDF rendered",
            html_length=len(html),
            pdf_bytes=len(pdf),
            total_time_ms=(time.time() - start_time) * 1000,
        )
        return pdf
