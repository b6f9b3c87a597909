"""Models for scrape results, PDF jobs and API response envelopes.

Wire format is camelCase (the calling web app is TypeScript); Python code
uses snake_case attribute names. Every model accepts both.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageRecord(CamelModel):
    """Cleaned content of one fetched page."""

    url: str = Field(..., description="Page URL (seed URL or same-origin link)")
    content: str = Field(default="", description="Cleaned text, one line per block element")
    raw_html: str | None = Field(
        default=None,
        exclude=True,
        description="Rendered HTML, kept in memory for news link extraction only",
    )


class NewsItem(CamelModel):
    """A headline found on a news-like page."""

    title: str
    url: str
    # Date extraction is unreliable without site-specific selectors
    date: str | None = None


class ScrapeResult(CamelModel):
    """Caller-facing result of one /scrape request.

    Heuristic fields are None when there is not enough evidence; they are
    never empty strings or empty lists.
    """

    combined_text: str = Field(default="", description="All page contents, seed first")
    raw_pages: List[PageRecord] = Field(default_factory=list)
    company_basics: str | None = None
    products_and_services: str | None = None
    culture_and_values: str | None = None
    recent_news: List[NewsItem] | None = None


class ScrapeResponse(CamelModel):
    """Success envelope for GET /scrape."""

    success: bool = True
    data: ScrapeResult


class ErrorResponse(CamelModel):
    """Failure envelope shared by the JSON endpoints."""

    success: bool = False
    error: str
    details: str | None = None


class PdfJob(CamelModel):
    """Body of POST /generate-pdf."""

    html: str | None = Field(default=None, description="Fully rendered HTML document")
    filename: str | None = Field(default=None, description="Attachment filename")
