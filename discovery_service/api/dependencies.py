"""Request dependencies shared by the browser-backed routes."""

import asyncio

from discovery_service.config import get_settings
from discovery_service.services.browser import BrowserLauncher, launch_chrome

# Global instance
_browser_slots: asyncio.Semaphore | None = None


def get_browser_launcher() -> BrowserLauncher:
    """Launcher used by /scrape and /generate-pdf.

    Overridden in tests through ``app.dependency_overrides``.
    """
    return launch_chrome


def get_browser_slots() -> asyncio.Semaphore:
    """Semaphore bounding concurrent browser sessions in this process."""
    global _browser_slots
    if _browser_slots is None:
        _browser_slots = asyncio.Semaphore(get_settings().max_concurrent_scrapes)
    return _browser_slots


def reset_browser_slots() -> None:
    """Reset the global semaphore (primarily for testing)."""
    global _browser_slots
    _browser_slots = None
