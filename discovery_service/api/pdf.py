"""HTML to PDF endpoint."""

import logging

import sentry_sdk
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from discovery_service.api.dependencies import get_browser_launcher, get_browser_slots
from discovery_service.models.scraper_models import PdfJob
from discovery_service.services.browser import BrowserLauncher
from discovery_service.services.input_validator import sanitize_pdf_filename
from discovery_service.services.pdf_renderer import (
    HTML_REQUIRED_MESSAGE,
    PdfRenderer,
    PdfRenderError,
    PdfValidationError,
)

logger = logging.getLogger(__name__)
router = APIRouter()


async def read_pdf_job(request: Request) -> PdfJob:
    """Parse the request body into a PdfJob.

    A missing or malformed body is rejected like blank HTML, with a 400
    ``{"error": ...}`` response rather than a 422.

    Raises:
        PdfValidationError: If the body is missing or malformed
    """
    body = await request.body()
    if not body.strip():
        raise PdfValidationError(HTML_REQUIRED_MESSAGE)

    try:
        return PdfJob.model_validate_json(body)
    except ValidationError as e:
        if any(error["loc"][:1] == ("html",) for error in e.errors()):
            raise PdfValidationError(HTML_REQUIRED_MESSAGE) from e
        raise PdfValidationError("Invalid request body") from e


@router.post("/generate-pdf")
async def generate_pdf(
    request: Request,
    launcher: BrowserLauncher = Depends(get_browser_launcher),
):
    """Render the posted HTML and return it as a PDF attachment."""
    try:
        job = await read_pdf_job(request)
        if not job.html or not job.html.strip():
            raise PdfValidationError(HTML_REQUIRED_MESSAGE)
        filename = sanitize_pdf_filename(job.filename)
        async with get_browser_slots():
            pdf = await PdfRenderer(launcher).render(job.html)
    except PdfValidationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except PdfRenderError as e:
        logger.warning("PDF generation failed: %s", e)
        return JSONResponse(status_code=500, content={"error": "Failed to generate PDF"})
    except Exception as e:
        logger.exception("Unexpected error while generating PDF")
        sentry_sdk.capture_exception(e)
        return JSONResponse(status_code=500, content={"error": "Failed to generate PDF"})

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
