"""
HTML to text normalization.

Turns a fetched page into the lightweight, line-oriented text the
extraction backend reads, as a pipeline of small stages:

    parse -> drop non-content -> pick main region -> render structure
          -> strip residual markup -> collapse whitespace -> truncate

A second, untruncated rendering (`text_for_hashing`) feeds change
detection, so the length cap can never produce a false change signal.
"""

import html as html_lib
import logging
import re
from typing import Optional, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment, PreformattedString

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 15_000
TRUNCATION_MARKER = "\n\n[... content truncated ...]"

# Removed together with everything inside them
NON_CONTENT_TAGS = [
    "script",
    "style",
    "noscript",
    "template",
    "iframe",
    "svg",
    "canvas",
    "video",
    "audio",
    "nav",
    "footer",
    "header",
    "aside",
    "form",
    "button",
    "input",
    "select",
    "textarea",
]

MAIN_CONTENT_MIN_CHARS = 500
CONTENT_HINT_RE = re.compile(r"(content|main)", re.IGNORECASE)

HEADING_LEVELS = {f"h{level}": level for level in range(1, 7)}
BLOCK_TAGS = {
    "div", "section", "article", "main", "body", "html", "blockquote",
    "pre", "dl", "dt", "dd", "figure", "figcaption", "address", "hr",
}


# ============================================================================
# Stages
# ============================================================================


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def remove_non_content(soup: Union[BeautifulSoup, Tag]) -> Union[BeautifulSoup, Tag]:
    """Drop scripts, navigation, forms, media embeds and comments in place."""
    for element in soup.find_all(NON_CONTENT_TAGS):
        element.extract()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    return soup


def select_main_content(soup: BeautifulSoup) -> Union[BeautifulSoup, Tag]:
    """
    Best-effort main content region.

    Tries semantic containers first, then elements whose class or id hints
    at content, and falls back to <body> (or the whole document).
    """
    candidates = []
    candidates.extend(soup.find_all("main"))
    candidates.extend(soup.find_all("article"))
    candidates.extend(soup.find_all(attrs={"role": "main"}))
    candidates.extend(soup.find_all("div", class_=CONTENT_HINT_RE))
    candidates.extend(soup.find_all("div", id=CONTENT_HINT_RE))

    for candidate in candidates:
        if len(candidate.get_text(" ", strip=True)) > MAIN_CONTENT_MIN_CHARS:
            logger.debug("Main content found via <%s>", candidate.name)
            return candidate

    return soup.body or soup


def _render_table(table: Tag) -> str:
    rows = []
    for row in table.find_all("tr"):
        cells = [collapse_inline(render_structure(cell)) for cell in row.find_all(["th", "td"])]
        if any(cells):
            rows.append("| " + " | ".join(cells) + " |")
    return "\n" + "\n".join(rows) + "\n" if rows else ""


def render_structure(node) -> str:
    if isinstance(node, PreformattedString):
        return ""
    if isinstance(node, NavigableString):
        return re.sub(r"\s+", " ", str(node))
    if not isinstance(node, Tag):
        return ""

    name = node.name
    if name == "table":
        return _render_table(node)
    if name == "br":
        return "\n"

    inner = "".join(render_structure(child) for child in node.children)

    if name in HEADING_LEVELS:
        text = inner.strip()
        return f"\n{'#' * HEADING_LEVELS[name]} {text}\n" if text else ""
    if name == "p":
        return f"\n{inner.strip()}\n"
    if name == "li":
        return f"\n- {inner.strip()}\n"
    if name in ("ul", "ol"):
        return f"\n{inner}\n"
    if name == "a":
        text = inner.strip()
        href = (node.get("href") or "").strip()
        if text and href and not href.startswith(("#", "javascript:", "mailto:")):
            return f"[{text}]({href})"
        return inner
    if name in ("strong", "b"):
        text = inner.strip()
        return f"**{text}**" if text else ""
    if name in ("em", "i"):
        text = inner.strip()
        return f"*{text}*" if text else ""
    if name in BLOCK_TAGS:
        return f"\n{inner}\n"
    return inner


def collapse_inline(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def strip_residual_markup(text: str) -> str:
    """Remove tag-like leftovers (e.g. escaped markup inside text) and decode entities."""
    text = re.sub(r"</?[a-zA-Z][^>]*>", " ", text)
    return html_lib.unescape(text)


def collapse_whitespace(text: str) -> str:
    """Collapse runs of spaces, trim lines, keep at most one blank line in a row."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v\u00a0]+", " ", text)
    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate(text: str, max_length: Optional[int]) -> str:
    if max_length is None or len(text) <= max_length:
        return text
    logger.warning("Content too long, truncating from %d to %d chars", len(text), max_length)
    return text[:max_length] + TRUNCATION_MARKER


# ============================================================================
# Entry points
# ============================================================================


def html_to_text(html: str, max_length: Optional[int] = DEFAULT_MAX_LENGTH) -> str:
    """Length-capped text used as extraction input."""
    soup = remove_non_content(parse_html(html))
    content = select_main_content(soup)
    text = render_structure(content)
    text = strip_residual_markup(text)
    text = collapse_whitespace(text)
    return truncate(text, max_length)


def text_for_hashing(html: str) -> str:
    """
    Untruncated, markup-free text used only for change detection.

    Uses the whole document (not the main region) so edits anywhere in the
    visible content are noticed; all whitespace collapses to single spaces.
    """
    soup = remove_non_content(parse_html(html))
    text = soup.get_text(" ")
    text = strip_residual_markup(text)
    return collapse_inline(text)
