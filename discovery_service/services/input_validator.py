"""Input validation for the HTTP surface.

Provides functions for validating scrape targets and sanitizing PDF
attachment filenames before they reach the browser.
"""

import re
import unicodedata
from typing import NamedTuple
from urllib.parse import urlparse

import logfire

from discovery_service.constants import (
    DEFAULT_PDF_FILENAME,
    MAX_PDF_FILENAME_CHARS,
    MAX_TARGET_URL_CHARS,
)


class ValidationResult(NamedTuple):
    """Result of input validation.

    Attributes:
        is_valid: Whether the input passed validation.
        error_code: Error code if validation failed, None otherwise.
        error_message: Human-readable error message if validation failed.
        value: The cleaned value when valid, None otherwise.
    """

    is_valid: bool
    error_code: str | None
    error_message: str | None
    value: str | None = None


def validate_target_url(raw: str | None) -> ValidationResult:
    """Validate a scrape target URL.

    The URL must be absolute, use http or https, and name a host.

    Args:
        raw: The url query parameter as received.

    Returns:
        ValidationResult whose value is the stripped URL when valid.
    """
    if raw is None or not raw.strip():
        return ValidationResult(False, "missing_url", "URL is required")

    url = raw.strip()

    if len(url) > MAX_TARGET_URL_CHARS:
        return ValidationResult(
            False,
            "url_too_long",
            f"URL exceeds maximum length of {MAX_TARGET_URL_CHARS} characters",
        )

    try:
        parsed = urlparse(url)
        # Accessing .port validates the port number
        parsed.port
    except ValueError as e:
        return ValidationResult(False, "invalid_url", f"Could not parse URL: {e}")

    if parsed.scheme.lower() not in ("http", "https"):
        return ValidationResult(
            False,
            "unsupported_scheme",
            "URL must be absolute and start with http:// or https://",
        )

    if not parsed.hostname:
        return ValidationResult(False, "invalid_url", "URL has no host")

    return ValidationResult(True, None, None, url)


_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")


def sanitize_pdf_filename(filename: str | None) -> str:
    """Make a caller-supplied filename safe for Content-Disposition.

    Performs the following sanitization:
    - Strips any directory part
    - Transliterates to ASCII and replaces other unsafe characters with "_"
    - Ensures a .pdf extension
    - Truncates to the maximum allowed length

    Args:
        filename: Desired attachment filename (may be None).

    Returns:
        A non-empty ASCII filename ending in .pdf.
    """
    if not filename or not filename.strip():
        return DEFAULT_PDF_FILENAME

    name = filename.strip().replace("\\", "/").rsplit("/", 1)[-1]
    name = (
        unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    )
    name = _UNSAFE_FILENAME_CHARS.sub("_", name)

    if name.lower().endswith(".pdf"):
        name = name[:-4]
    name = name.strip(" ._")
    if not name:
        return DEFAULT_PDF_FILENAME

    max_stem = MAX_PDF_FILENAME_CHARS - len(".pdf")
    if len(name) > max_stem:
        logfire.info(
            "PDF filename truncated",
            original_length=len(name),
            max_length=MAX_PDF_FILENAME_CHARS,
        )
        name = name[:max_stem].rstrip(" ._")

    return f"{name}.pdf"
