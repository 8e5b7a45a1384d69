"""Parse raw synthesis output into a summary paragraph and titled sections.

Models do not always follow the requested format exactly, so the parser
accepts HTML headings (<h1>-<h3>), markdown headings (#, ##, ###) and
standalone **bold** lines as section boundaries, and ignores code fences
and chatty preambles ("Here is the synthesis:").
"""

import logging
import re
from typing import List, Tuple

from ..models import Section

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "<p>Summary not available.</p>"
FALLBACK_SECTION_TITLE = "Overview"

_FENCE_RE = re.compile(r"```[a-zA-Z]*[ \t]*\n(.*?)```", re.DOTALL)
_FIRST_BLOCK_RE = re.compile(r"<(?:p|h[1-6]|ul|ol|div|section)\b", re.IGNORECASE)
_MD_HEADING_RE = re.compile(r"^[ \t]*#{1,3}[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
_BOLD_HEADING_RE = re.compile(r"^[ \t]*\*\*([^*\n]+?)\*\*:?[ \t]*$", re.MULTILINE)
_HTML_HEADING_RE = re.compile(r"<h[1-3][^>]*>(.*?)</h[1-3]>", re.IGNORECASE | re.DOTALL)
_FIRST_PARAGRAPH_RE = re.compile(r"<p[^>]*>.*?</p>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text unchanged."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def drop_leading_commentary(text: str) -> str:
    """Drop prose that precedes the first HTML block element."""
    match = _FIRST_BLOCK_RE.search(text)
    if match and match.start() > 0:
        prefix = text[: match.start()]
        # Markdown headings before the first tag are content, not commentary
        if not _MD_HEADING_RE.search(prefix) and not _BOLD_HEADING_RE.search(prefix):
            logger.debug(f"Dropping {len(prefix)} chars of leading commentary")
            return text[match.start():]
    return text


def clean_html(html: str) -> str:
    """Collapse whitespace, drop empty paragraphs, one paragraph per line."""
    cleaned = re.sub(r"\s+", " ", html).strip()
    cleaned = re.sub(r"<p>\s*</p>", "", cleaned)
    cleaned = re.sub(r"</p>\s*<p>", "</p>\n<p>", cleaned)
    return cleaned.strip()


def _normalize_headings(text: str) -> str:
    text = _MD_HEADING_RE.sub(lambda m: f"<h2>{m.group(1).strip()}</h2>", text)
    text = _BOLD_HEADING_RE.sub(lambda m: f"<h2>{m.group(1).strip()}</h2>", text)
    return text


def _as_paragraph(text: str) -> str:
    """Wrap bare text in <p> so every summary is a block element."""
    if _FIRST_BLOCK_RE.match(text):
        return text
    return f"<p>{text}</p>"


def _title_text(raw: str) -> str:
    return re.sub(r"\s+", " ", _TAG_RE.sub("", raw)).strip()


def parse_synthesis(text: str) -> Tuple[str, List[Section]]:
    """Split synthesis output into (summary_html, sections).

    The summary is whatever precedes the first heading. Sections with empty
    bodies are dropped and the rest are numbered 0..n-1 in output order. When
    the output has no headings at all, the whole body becomes a single
    "Overview" section and the summary is its first paragraph.

    Raises:
        ValueError: if the output has no usable content
    """
    if not text or not text.strip():
        raise ValueError("Synthesis output is empty")

    body = drop_leading_commentary(strip_code_fences(text))
    body = _normalize_headings(body)

    parts = _HTML_HEADING_RE.split(body)
    # re.split with one group yields [preamble, title1, body1, title2, body2, ...]
    preamble, rest = parts[0], parts[1:]

    if not rest:
        content = clean_html(body)
        if not content:
            raise ValueError("Synthesis output has no content")
        match = _FIRST_PARAGRAPH_RE.search(content)
        summary = match.group(0) if match else FALLBACK_SUMMARY
        return summary, [Section(title=FALLBACK_SECTION_TITLE, content_html=content, order=0)]

    sections = []
    for raw_title, raw_content in zip(rest[0::2], rest[1::2]):
        title = _title_text(raw_title)
        content = clean_html(raw_content)
        if not title or not content:
            continue
        sections.append(Section(title=title, content_html=content, order=len(sections)))

    if not sections:
        raise ValueError("Synthesis output has headings but no section content")

    preamble = clean_html(preamble)
    summary = _as_paragraph(preamble) if preamble else FALLBACK_SUMMARY
    return summary, sections
