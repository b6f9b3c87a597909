"""Application-wide constants.

This module centralizes all magic numbers and configuration constants
to ensure a single source of truth and easier maintenance.

Values that operators tune per deployment are also exposed as settings
in discovery_service/config.py; the constants here are their defaults.
"""

# =============================================================================
# Service
# =============================================================================

SERVICE_NAME = "web-discovery-service"
SERVICE_VERSION = "1.0.0"

# Port the original scraping service listened on
DEFAULT_PORT = 3005

# Local dev frontend + production web app
DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000,https://interviewiq.vercel.app"

# =============================================================================
# Crawl Configuration
# =============================================================================

# Maximum number of discovered pages fetched in addition to the seed page
DEFAULT_MAX_DISCOVERED_PAGES = 5

# Path keywords that mark an internal page as worth fetching
RELEVANT_PATH_KEYWORDS = (
    "about",
    "company",
    "who-we-are",
    "team",
    "careers",
    "culture",
    "blog",
    "news",
    "press",
    "services",
    "solutions",
    "products",
)

# Extensions to skip when discovering links (binary or non-page resources)
NON_HTML_EXTENSIONS = frozenset(
    (
        ".pdf",
        ".jpg",
        ".jpeg",
        ".png",
        ".gif",
        ".webp",
        ".svg",
        ".ico",
        ".zip",
        ".tar",
        ".gz",
        ".css",
        ".js",
        ".json",
        ".xml",
        ".rss",
        ".mp3",
        ".mp4",
        ".webm",
        ".woff",
        ".woff2",
        ".ttf",
        ".eot",
    )
)

# =============================================================================
# Browser Timeouts (seconds)
# =============================================================================

# Initial seed page navigation; failure here aborts the request
SEED_NAVIGATION_TIMEOUT_SECONDS = 60.0

# Navigation of each discovered page; failure skips that page only
PAGE_NAVIGATION_TIMEOUT_SECONDS = 30.0

# Wait for a "content is present" selector before extracting
CONTENT_SELECTOR_TIMEOUT_SECONDS = 10.0

# Fixed delay that lets client-side rendering finish before reading the DOM
SETTLE_DELAY_SECONDS = 2.0

# Loading + network quiescence budget for PDF rendering
PDF_RENDER_TIMEOUT_SECONDS = 60.0

# How long the network must stay quiet to count as idle
NETWORK_IDLE_QUIET_SECONDS = 0.5

# Poll interval used while waiting for network quiescence
NETWORK_IDLE_POLL_SECONDS = 0.1

# =============================================================================
# Content Aggregation
# =============================================================================

# Maximum length of a heuristic section extract (chars)
MAX_SECTION_CHARS = 2000

COMPANY_BASICS_KEYWORDS = ("founded", "ceo", "headquarters", "employees", "mission")
PRODUCTS_AND_SERVICES_KEYWORDS = (
    "product",
    "service",
    "solution",
    "offering",
    "platform",
)
CULTURE_AND_VALUES_KEYWORDS = ("culture", "values", "our team", "careers")

# URL fragments that identify news-like pages
NEWS_PATH_FRAGMENTS = ("/blog", "/news", "press-releases")

# Plausible headline length bounds (chars, exclusive)
MIN_NEWS_TITLE_CHARS = 20
MAX_NEWS_TITLE_CHARS = 150

# Maximum news items taken from a single page
MAX_NEWS_ITEMS_PER_PAGE = 5

# =============================================================================
# Rate Limiting
# =============================================================================

# General limiter applied to every route
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 60
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 60

# Stricter limiter for /scrape (browser automation is the expensive path)
DEFAULT_SCRAPE_RATE_LIMIT_MAX_REQUESTS = 10
DEFAULT_SCRAPE_RATE_LIMIT_WINDOW_SECONDS = 60

# =============================================================================
# Concurrency
# =============================================================================

# Maximum browser sessions (scrapes + PDF renders) running at once
DEFAULT_MAX_CONCURRENT_SCRAPES = 3

# =============================================================================
# PDF Rendering
# =============================================================================

DEFAULT_PDF_FILENAME = "report.pdf"

# US Letter, inches
PDF_PAPER_WIDTH_INCHES = 8.5
PDF_PAPER_HEIGHT_INCHES = 11.0
PDF_MARGIN_INCHES = 0.5

# =============================================================================
# Input Validation
# =============================================================================

MAX_TARGET_URL_CHARS = 2048
MAX_PDF_FILENAME_CHARS = 120
