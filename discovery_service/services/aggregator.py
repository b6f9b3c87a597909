"""Build the caller-facing ScrapeResult from extracted pages.

Section extracts and news items are keyword heuristics. They return None
when there is no evidence rather than guessing or returning empty values.
"""

import re
from typing import Iterable, List, Sequence
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

from discovery_service.constants import (
    COMPANY_BASICS_KEYWORDS,
    CULTURE_AND_VALUES_KEYWORDS,
    MAX_NEWS_ITEMS_PER_PAGE,
    MAX_NEWS_TITLE_CHARS,
    MAX_SECTION_CHARS,
    MIN_NEWS_TITLE_CHARS,
    NEWS_PATH_FRAGMENTS,
    PRODUCTS_AND_SERVICES_KEYWORDS,
)
from discovery_service.models.scraper_models import NewsItem, PageRecord, ScrapeResult
from discovery_service.services.content_extractor import (
    normalize_whitespace,
    strip_non_content,
)

PAGE_SEPARATOR = "\n\n"

# Candidate boundary: whitespace preceded by "." or "?", or any line break
_BOUNDARY = re.compile(r"(?<=[.?])\s+|\s*\n\s*")

# "U.S.", "e.g.", "i.e."
_DOTTED_INITIALISM = re.compile(r"(?:\w\.){2,}")
# "J." in "J. Smith"
_SINGLE_INITIAL = re.compile(r"[A-Z]\.")
# "Dr.", "Mr.", "St."
_TWO_LETTER_TITLE = re.compile(r"[A-Z][a-z]\.")

KNOWN_ABBREVIATIONS = frozenset(
    ("inc", "ltd", "corp", "co", "llc", "mrs", "prof", "jr", "sr", "st", "vs")
)


def _ends_with_abbreviation(fragment: str) -> bool:
    parts = fragment.rsplit(None, 1)
    if not parts:
        return False
    token = parts[-1].lstrip("(\"'")
    if (
        _DOTTED_INITIALISM.fullmatch(token)
        or _SINGLE_INITIAL.fullmatch(token)
        or _TWO_LETTER_TITLE.fullmatch(token)
    ):
        return True
    return token.endswith(".") and token[:-1].lower() in KNOWN_ABBREVIATIONS


def split_sentences(text: str) -> List[str]:
    """Split text into sentences on "." and "?".

    A boundary is a "." or "?" followed by whitespace, unless the word before
    it is an abbreviation (dotted initialisms, single initials, two-letter
    titles like "Dr.", or one of KNOWN_ABBREVIATIONS such as "Inc.").
    Decimal numbers never split because no whitespace follows their dot.
    A line break always ends a sentence.

    Args:
        text: Free text, possibly spanning several pages

    Returns:
        Stripped, non-empty sentences in order
    """
    if not text:
        return []

    sentences: List[str] = []
    start = 0
    for match in _BOUNDARY.finditer(text):
        fragment = text[start : match.start()]
        if "\n" not in match.group() and _ends_with_abbreviation(fragment):
            continue
        sentences.append(fragment.strip())
        start = match.end()
    sentences.append(text[start:].strip())

    return [s for s in sentences if s]


def extract_section(
    text: str,
    keywords: Sequence[str],
    max_length: int = MAX_SECTION_CHARS,
) -> str | None:
    """Collect the first sentence mentioning each keyword.

    Keywords are matched case-insensitively as substrings. A sentence that
    is the first hit for several keywords is included once.

    Returns:
        Matched sentences joined with spaces and truncated to max_length,
        or None when no sentence matched any keyword
    """
    found: set[str] = set()
    matched: List[str] = []

    for sentence in split_sentences(text):
        lowered = sentence.lower()
        new_hits = [k for k in keywords if k not in found and k in lowered]
        if new_hits:
            matched.append(sentence)
            found.update(new_hits)
        if len(found) == len(keywords):
            break

    if not matched:
        return None
    return " ".join(matched)[:max_length]


def _is_news_page(url: str) -> bool:
    return any(fragment in url for fragment in NEWS_PATH_FRAGMENTS)


def _plausible_title(text: str) -> bool:
    return MIN_NEWS_TITLE_CHARS < len(text) < MAX_NEWS_TITLE_CHARS


def _news_from_html(page: PageRecord) -> List[NewsItem]:
    soup = strip_non_content(BeautifulSoup(page.raw_html or "", "html.parser"))
    items: List[NewsItem] = []

    for anchor in soup.find_all("a", href=True):
        title = normalize_whitespace(anchor.get_text(" "))
        if not _plausible_title(title):
            continue
        href = (anchor["href"] or "").strip()
        if not href or href.startswith("#"):
            continue
        try:
            absolute, _ = urldefrag(urljoin(page.url, href))
        except ValueError:
            continue
        if urlparse(absolute).scheme not in ("http", "https"):
            continue
        if absolute == urldefrag(page.url)[0]:
            # In-page anchor dressed up as a link
            continue
        items.append(NewsItem(title=title, url=absolute, date=None))

    return items


def _news_from_text(page: PageRecord) -> List[NewsItem]:
    items: List[NewsItem] = []
    for line in page.content.split("\n"):
        title = line.strip()
        if _plausible_title(title):
            items.append(NewsItem(title=title, url=page.url, date=None))
    return items


def extract_news(pages: Iterable[PageRecord]) -> List[NewsItem] | None:
    """Extract headline candidates from news-like pages.

    Uses anchor texts when the page's rendered HTML is available, otherwise
    short lines of its cleaned text. Dates are never extracted.

    Returns:
        News items, or None when there are no news-like pages or none of
        them yielded a plausible headline
    """
    news_pages = [p for p in pages if _is_news_page(p.url)]
    if not news_pages:
        return None

    news: List[NewsItem] = []
    seen: set[tuple[str, str]] = set()
    for page in news_pages:
        candidates = _news_from_html(page) if page.raw_html else _news_from_text(page)
        taken = 0
        for item in candidates:
            key = (item.url, item.title)
            if key in seen:
                continue
            seen.add(key)
            news.append(item)
            taken += 1
            if taken >= MAX_NEWS_ITEMS_PER_PAGE:
                break

    return news or None


def build_scrape_result(pages: Sequence[PageRecord]) -> ScrapeResult:
    """Combine extracted pages into a ScrapeResult.

    Args:
        pages: PageRecords in page-set order (seed first)

    Returns:
        ScrapeResult with the combined corpus and heuristic extracts
    """
    combined_text = PAGE_SEPARATOR.join(p.content for p in pages)

    return ScrapeResult(
        combined_text=combined_text,
        raw_pages=list(pages),
        company_basics=extract_section(combined_text, COMPANY_BASICS_KEYWORDS),
        products_and_services=extract_section(
            combined_text, PRODUCTS_AND_SERVICES_KEYWORDS
        ),
        culture_and_values=extract_section(combined_text, CULTURE_AND_VALUES_KEYWORDS),
        recent_news=extract_news(pages),
    )
