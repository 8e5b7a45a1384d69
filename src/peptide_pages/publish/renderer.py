"""Render a PageRecord to a standalone HTML document and to PDF."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Protocol

import jinja2

logger = logging.getLogger(__name__)

WORDS_PER_PAGE = 500

PAGE_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>{{ page.name }} - Evidence Summary</title>
  <style>
    body { font-family: Georgia, 'Times New Roman', serif; font-size: 11pt; line-height: 1.6; color: #1a1a1a; }
    h1 { font-size: 24pt; margin-bottom: 0.5em; page-break-after: avoid; }
    h2 { font-size: 16pt; margin-top: 1.5em; margin-bottom: 0.75em; page-break-after: avoid; }
    h3 { font-size: 13pt; margin-top: 1em; margin-bottom: 0.5em; }
    p { margin-bottom: 1em; text-align: justify; }
    ul, ol { margin-left: 1.5em; margin-bottom: 1em; }
    .header { border-bottom: 2px solid #000; padding-bottom: 1em; margin-bottom: 2em; }
    .metadata { font-size: 9pt; color: #666; margin-top: 0.5em; }
    .evidence-badge { display: inline-block; padding: 0.25em 0.75em; border-radius: 4px; font-size: 9pt; font-weight: bold; text-transform: uppercase; color: white; margin-right: 1em; }
    .badge-high { background: #10b981; }
    .badge-moderate { background: #f59e0b; }
    .badge-low { background: #ef4444; }
    .badge-very-low { background: #6b7280; }
    .summary { background: #f9fafb; border-left: 4px solid #3b82f6; padding: 1em; margin-bottom: 2em; page-break-inside: avoid; }
    .section { margin-bottom: 2em; }
    .plain-language { font-style: italic; color: #374151; border-left: 2px solid #d1d5db; padding-left: 0.75em; }
    .legal-notes { margin-top: 3em; padding-top: 1em; border-top: 1px solid #d1d5db; font-size: 9pt; color: #6b7280; page-break-inside: avoid; }
    .footer { margin-top: 2em; padding-top: 1em; border-top: 1px solid #e5e7eb; font-size: 8pt; color: #9ca3af; text-align: center; }
    @page { size: {{ page_format }}; margin: 1in; }
  </style>
</head>
<body>
  <div class="header">
    <h1>{{ page.name }}</h1>
    {% if page.aliases %}<div class="metadata">Also known as: {{ page.aliases | join(", ") }}</div>{% endif %}
    <div class="metadata">
      <span class="evidence-badge {{ badge_class }}">{{ page.evidence_grade.label }} Evidence</span>
      <span>{{ page.human_controlled_count }} Human Controlled Trials &middot; {{ page.animal_count }} Animal Studies</span>
      <span>Last Updated: {{ page.last_updated.strftime("%Y-%m-%d") }}</span>
    </div>
  </div>

  <div class="summary">
    <h2>Summary</h2>
    {{ page.summary_html | safe }}
  </div>
{% for section in sections %}
  <div class="section">
    <h2>{{ section.title }}</h2>
    {% if section.plain_language_summary %}<p class="plain-language">{{ section.plain_language_summary }}</p>{% endif %}
    {{ section.content_html | safe }}
  </div>
{% endfor %}
  <div class="legal-notes">
    <h3>Legal Disclaimer</h3>
    {% for note in page.legal_notes %}<p>{{ note }}</p>
    {% endfor %}
  </div>

  <div class="footer">
    <p>Version {{ page.version }} &middot; {{ page.last_updated.isoformat() }}</p>
    <p>For educational purposes only. Not medical advice.</p>
  </div>
</body>
</html>
"""

_env = jinja2.Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True)
_template = _env.from_string(PAGE_TEMPLATE)


@dataclass
class RenderedDocument:
    content: bytes
    page_count: int
    content_type: str = "application/pdf"

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class DocumentRenderer(Protocol):
    """Protocol for page renderers (PDF engines, test fakes)."""

    async def render(self, page) -> RenderedDocument:
        ...


def badge_class(grade) -> str:
    return "badge-" + grade.value.replace("_", "-")


def build_html_document(page, page_format: str = "A4") -> str:
    """Render the page as a complete HTML document.

    Output depends only on the record, so re-rendering the same version
    yields identical bytes.
    """
    return _template.render(
        page=page,
        sections=page.sorted_sections(),
        badge_class=badge_class(page.evidence_grade),
        page_format=page_format,
    )


def estimate_page_count(page) -> int:
    """Rough printed length at ~500 words per page, minimum one page."""
    text = re.sub(r"<[^>]*>", " ", page.content_html())
    word_count = len(text.split())
    return max(1, -(-word_count // WORDS_PER_PAGE))


class WeasyPrintRenderer:
    """Render pages to PDF with WeasyPrint."""

    def __init__(self, page_format: str = "A4"):
        self.page_format = page_format

    def _render_sync(self, html: str) -> RenderedDocument:
        try:
            from weasyprint import HTML
        except ImportError:
            raise ImportError(
                "weasyprint package required. Install with: "
                "pip install peptide-pages[pdf]"
            )

        document = HTML(string=html).render()
        content = document.write_pdf()
        return RenderedDocument(content=content, page_count=len(document.pages))

    async def render(self, page) -> RenderedDocument:
        html = build_html_document(page, self.page_format)
        rendered = await asyncio.to_thread(self._render_sync, html)
        logger.info(f"Rendered {page.slug} v{page.version}: {rendered.size_bytes} bytes, {rendered.page_count} pages")
        return rendered
