"""Turn one loaded page into clean text.

The selector policy is data, not control flow:

    deny-list  ->  allow-list containers  ->  whole body

``extract_text_from_html`` applies it to static HTML and is pure, so the
policy can be audited and tested against fixture documents. The async
``extract_page_text`` prepares a live tab (content wait, overlay dismissal,
settle delay) and then hands the rendered HTML to the pure function.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Tuple

import logfire
from bs4 import BeautifulSoup, Tag
from bs4.element import PreformattedString

from discovery_service.constants import (
    CONTENT_SELECTOR_TIMEOUT_SECONDS,
    SETTLE_DELAY_SECONDS,
)
from discovery_service.services.browser import (
    BrowserError,
    BrowserPage,
    BrowserTimeoutError,
)

# Attribute set on overlays hidden during dismissal so they are stripped too
HIDDEN_OVERLAY_ATTR = "data-discovery-hidden"


@dataclass(frozen=True)
class SelectorGroup:
    """A named set of CSS selectors applied as one step of the policy."""

    name: str
    selectors: Tuple[str, ...]

    @property
    def css(self) -> str:
        return ", ".join(self.selectors)


# Subtrees removed before any text is read
DENY_GROUPS: Tuple[SelectorGroup, ...] = (
    SelectorGroup(
        "page-chrome",
        ("header", "footer", "nav", "aside", ".navbar", ".footer", "#header", "#footer"),
    ),
    SelectorGroup("non-text", ("script", "style", "noscript", "template", "svg", "form")),
    SelectorGroup(
        "consent",
        (
            ".cookie-banner",
            ".cookie-consent",
            "#cookie-banner",
            "#cookie-consent",
            '[class*="cookie"]',
            '[id*="cookie"]',
            '[class*="consent"]',
            '[id*="consent"]',
            f"[{HIDDEN_OVERLAY_ATTR}]",
        ),
    ),
)

# Likely-content containers, collected as one union in document order
ALLOW_GROUPS: Tuple[SelectorGroup, ...] = (
    SelectorGroup("landmarks", ("main", "article", "section", '[role="main"]')),
    SelectorGroup(
        "named-containers",
        (
            ".content",
            ".main-content",
            "#main",
            "#content",
            ".about",
            ".team",
            ".bio",
            ".leadership",
        ),
    ),
)

# Any of these present means the page has rendered something worth reading
CONTENT_PRESENT_SELECTOR = "main, article, section, p, h1, h2"

# Hide overlays and click consent buttons. Returns how many elements it touched.
DISMISS_OVERLAYS_SCRIPT = """
const fragments = ['cookie', 'consent', 'modal', 'popup'];
const marker = arguments[0];
let touched = 0;
document.querySelectorAll('[class], [id]').forEach(el => {
  if (el === document.body || el === document.documentElement) return;
  const name = ((el.getAttribute('class') || '') + ' ' + (el.id || '')).toLowerCase();
  if (fragments.some(f => name.includes(f))) {
    el.style.setProperty('display', 'none', 'important');
    el.setAttribute(marker, '1');
    touched += 1;
  }
});
const accept = /^(accept|agree|close|i agree|accept all|got it)\\b/i;
document.querySelectorAll('button, [role="button"], a.button').forEach(btn => {
  const label = (btn.innerText || btn.textContent || '').trim();
  if (label && accept.test(label)) {
    try { btn.click(); touched += 1; } catch (e) {}
  }
});
return touched;
"""

_NEVER_STRIP = frozenset(("html", "body"))
_WHITESPACE = re.compile(r"\s+")

# Elements that start and end a line of extracted text
BLOCK_TAGS = frozenset(
    "address article aside blockquote br dd div dl dt figcaption figure footer"
    " h1 h2 h3 h4 h5 h6 header hr li main nav ol p pre section table tr ul".split()
)


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE.sub(" ", text or "").strip()


def strip_non_content(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove every deny-listed subtree from ``soup`` in place."""
    for group in DENY_GROUPS:
        for element in soup.select(group.css):
            # decompose() of an ancestor leaves detached descendants in the list
            if element.decomposed or element.name in _NEVER_STRIP:
                continue
            element.decompose()
    return soup


def text_lines(root: Tag) -> list[str]:
    """Text of ``root`` as normalized lines, one per block element.

    Whitespace inside a line collapses to single spaces; source newlines do
    not break lines. Empty lines are dropped.
    """
    lines: list[str] = []
    words: list[str] = []

    def end_line() -> None:
        line = normalize_whitespace(" ".join(words))
        if line:
            lines.append(line)
        words.clear()

    # Iterative walk; malformed pages can nest deeper than the recursion limit
    stack = [(iter(root.children), False)]
    while stack:
        children, is_block = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            if is_block:
                end_line()
            continue
        if isinstance(child, Tag):
            block = child.name in BLOCK_TAGS
            if block:
                end_line()
            stack.append((iter(child.children), block))
        elif not isinstance(child, PreformattedString):
            words.append(str(child))
    end_line()
    return lines


def _select_content_containers(soup: BeautifulSoup) -> list[Tag]:
    """Allow-listed containers in document order, outermost only."""
    css = ", ".join(group.css for group in ALLOW_GROUPS)
    selected: list[Tag] = []
    selected_ids: set[int] = set()
    for element in soup.select(css):
        if any(id(parent) in selected_ids for parent in element.parents):
            continue
        selected.append(element)
        selected_ids.add(id(element))
    return selected


def extract_text_from_html(html: str) -> str:
    """Extract normalized main-content text from static HTML.

    Args:
        html: Rendered page HTML

    Returns:
        Cleaned text, one line per block element; empty string when the
        page has no readable content
    """
    if not html or not html.strip():
        return ""

    soup = strip_non_content(BeautifulSoup(html, "html.parser"))

    lines = [
        line
        for container in _select_content_containers(soup)
        for line in text_lines(container)
    ]
    if lines:
        return "\n".join(lines)

    return "\n".join(text_lines(soup.body or soup))


async def dismiss_overlays(page: BrowserPage) -> int:
    """Best-effort cookie/consent overlay dismissal.

    Returns:
        Number of elements hidden or clicked (0 when the script failed)
    """
    try:
        touched = await page.evaluate(DISMISS_OVERLAYS_SCRIPT, HIDDEN_OVERLAY_ATTR)
    except BrowserError as e:
        logfire.info("Overlay dismissal failed, continuing", error=str(e))
        return 0
    return int(touched or 0)


async def extract_page_text(
    page: BrowserPage,
    *,
    selector_timeout: float = CONTENT_SELECTOR_TIMEOUT_SECONDS,
    settle_delay: float = SETTLE_DELAY_SECONDS,
) -> tuple[str, str]:
    """Prepare a loaded tab and extract its text.

    Args:
        page: A tab that has already navigated to the target URL
        selector_timeout: Max wait for content to appear (seconds)
        settle_delay: Fixed delay for client-side rendering (seconds)

    Returns:
        Tuple of (cleaned_text, rendered_html)

    Raises:
        BrowserError: If the rendered HTML cannot be read
    """
    try:
        await page.wait_for_selector(CONTENT_PRESENT_SELECTOR, selector_timeout)
    except BrowserTimeoutError:
        # Sparse pages are still worth extracting
        logfire.info("Content selector wait timed out, extracting anyway")

    await dismiss_overlays(page)

    if settle_delay > 0:
        await asyncio.sleep(settle_delay)

    html = await page.content()
    return extract_text_from_html(html), html
