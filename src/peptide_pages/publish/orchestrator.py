"""Publish a PageRecord across renderer, metadata store and object storage.

Steps:
    1. Render the PDF
    2. Write peptide, studies, sections and changelog to the metadata store
    3. Upload the PDF
    4. Verify the upload

Each completed step registers an undo action. If a later step fails, the undo
actions run newest first, so a failed publish leaves no partial record behind.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from ..errors import PublishError
from ..models import PageRecord
from .renderer import DocumentRenderer
from .storage import ObjectStore, build_pdf_key
from .store import MetadataStore

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"

UndoAction = Tuple[str, Callable[[], Awaitable]]


@dataclass
class PublishResult:
    """Outcome of one publish attempt. Failures are reported, never raised."""
    success: bool
    page: Optional[PageRecord] = None
    pdf_url: str = ""
    pdf_key: str = ""
    studies_inserted: int = 0
    sections_inserted: int = 0
    size_bytes: int = 0
    page_count: int = 0
    failed_step: Optional[str] = None
    error: Optional[str] = None
    compensated: List[str] = field(default_factory=list)

    @property
    def version(self) -> Optional[int]:
        return self.page.version if self.page else None


class Publisher:
    """Saga-style publisher over injected renderer and stores."""

    def __init__(self, renderer: DocumentRenderer, store: MetadataStore, objects: ObjectStore):
        self.renderer = renderer
        self.store = store
        self.objects = objects

    async def _compensate(self, undo: List[UndoAction]) -> List[str]:
        """Run undo actions newest first. A failing undo is logged and skipped."""
        done = []
        for name, action in reversed(undo):
            try:
                await action()
                done.append(name)
                logger.info(f"Compensated {name}")
            except Exception as e:
                logger.error(f"Compensation for {name} failed: {e}")
        return done

    async def publish(self, page: PageRecord) -> PublishResult:
        """Publish the page, bumping its version past whatever is already stored."""
        undo: List[UndoAction] = []
        step = "version_check"

        try:
            current = await self.store.current_version(page.slug)
            if current >= page.version:
                logger.info(f"{page.slug} already at v{current}, publishing as v{current + 1}")
                page = page.with_version(current + 1)

            step = "render"
            rendered = await self.renderer.render(page)
            if not rendered.content:
                raise PublishError(step, "renderer produced an empty document")

            step = "metadata_write"
            write = await self.store.write_page(page)
            undo.append((step, lambda: self.store.rollback(write)))

            step = "upload"
            key = build_pdf_key(page.slug, page.version)
            info = await self.objects.put(key, rendered.content, PDF_CONTENT_TYPE)
            undo.append((step, lambda: self.objects.delete(key)))

            step = "verify"
            stored = await self.objects.head(key)
            if stored is None or stored.size_bytes != rendered.size_bytes:
                raise PublishError(step, f"uploaded object {key} is missing or truncated")

        except Exception as e:
            error = e if isinstance(e, PublishError) else PublishError(step, str(e))
            logger.error(f"Publish of {page.slug} v{page.version} failed: {error}")
            compensated = await self._compensate(undo)
            return PublishResult(
                success=False,
                page=page,
                failed_step=step,
                error=str(error),
                compensated=compensated,
            )

        logger.info(f"Published {page.slug} v{page.version} to {info.url}")
        return PublishResult(
            success=True,
            page=page,
            pdf_url=info.url,
            pdf_key=key,
            studies_inserted=write.studies_inserted,
            sections_inserted=write.sections_inserted,
            size_bytes=rendered.size_bytes,
            page_count=rendered.page_count,
        )

    async def republish(self, page: PageRecord) -> PublishResult:
        """Publish the next version of an already published page."""
        return await self.publish(page.next_version())

    async def dry_run(self, page: PageRecord) -> PublishResult:
        """Render only; nothing is written or uploaded."""
        try:
            rendered = await self.renderer.render(page)
        except Exception as e:
            error = PublishError("render", str(e))
            logger.error(f"Dry run of {page.slug} failed: {error}")
            return PublishResult(success=False, page=page, failed_step="render", error=str(error))

        return PublishResult(
            success=True,
            page=page,
            size_bytes=rendered.size_bytes,
            page_count=rendered.page_count,
        )
