"""Company website scrape endpoint.

Request flow:
1. Rate limiting (general and scrape tiers) happens in middleware
2. Target URL validation
3. Wait for a browser slot
4. Crawl the site and aggregate the extracted pages
"""

import logging

import sentry_sdk
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from discovery_service.api.dependencies import get_browser_launcher, get_browser_slots
from discovery_service.models.scraper_models import ErrorResponse, ScrapeResponse
from discovery_service.services.aggregator import build_scrape_result
from discovery_service.services.browser import BrowserError, BrowserLauncher
from discovery_service.services.input_validator import validate_target_url
from discovery_service.services.site_crawler import SeedPageError, SiteCrawler

logger = logging.getLogger(__name__)
router = APIRouter()


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@router.get("/scrape")
async def scrape(
    url: str | None = None,
    launcher: BrowserLauncher = Depends(get_browser_launcher),
):
    """Crawl a company website and return its combined text and extracts."""
    validation = validate_target_url(url)
    if not validation.is_valid:
        if validation.error_code == "missing_url":
            return _error(400, "URL is required")
        logger.info("Rejected scrape target: %s", validation.error_message)
        return _error(400, "Invalid URL", validation.error_message)

    target_url = validation.value
    try:
        async with get_browser_slots():
            pages = await SiteCrawler(launcher).crawl(target_url)
        result = build_scrape_result(pages)
    except (SeedPageError, BrowserError) as e:
        logger.warning("Scrape of %s failed: %s", target_url, e)
        return _error(500, "Failed to scrape the website", str(e))
    except Exception as e:
        logger.exception("Unexpected error while scraping %s", target_url)
        sentry_sdk.capture_exception(e)
        return _error(500, "Failed to scrape the website", str(e))

    response = ScrapeResponse(data=result)
    return JSONResponse(content=response.model_dump(mode="json", by_alias=True))
