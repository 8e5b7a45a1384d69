"""Durable metadata store for published pages (SQLAlchemy).

Tables:

    peptides       one row per slug, current published version
    studies        study records, keyed by registry-prefixed id
    page_sections  sections of the current version
    changelog      append-only publish / rollback history

SQLAlchemy sessions are blocking, so every public method runs its work in a
worker thread and is awaited by the publish orchestrator.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..models import PageRecord, Section

logger = logging.getLogger(__name__)

Base = declarative_base()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PeptideRow(Base):
    __tablename__ = "peptides"

    id = Column(String(36), primary_key=True)
    slug = Column(String(200), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    aliases = Column(JSON, nullable=False, default=list)
    evidence_grade = Column(String(20), nullable=False, index=True)
    human_controlled_count = Column(Integer, nullable=False, default=0)
    animal_count = Column(Integer, nullable=False, default=0)
    summary_html = Column(Text, nullable=False)
    legal_notes = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=1)
    last_updated = Column(String(40), nullable=False)
    created_at = Column(String(40), nullable=False, default=_now)

    def __repr__(self):
        return f"<PeptideRow(slug='{self.slug}', version={self.version})>"


class StudyRow(Base):
    __tablename__ = "studies"

    id = Column(String(100), primary_key=True)
    peptide_id = Column(String(36), ForeignKey("peptides.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    title = Column(Text, nullable=False)
    design = Column(String(40), nullable=False)
    record = Column(JSON, nullable=False)


class SectionRow(Base):
    __tablename__ = "page_sections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    peptide_id = Column(String(36), ForeignKey("peptides.id"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    content_html = Column(Text, nullable=False)
    plain_language_summary = Column(Text, nullable=True)
    section_order = Column(Integer, nullable=False, default=0)


class ChangelogRow(Base):
    __tablename__ = "changelog"

    # No FK: entries outlive a rolled-back peptide
    id = Column(Integer, primary_key=True, autoincrement=True)
    peptide_id = Column(String(36), nullable=False)
    slug = Column(String(200), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    change_type = Column(String(20), nullable=False)
    change_summary = Column(Text, nullable=False)
    changed_by = Column(String(50), nullable=False, default="system")
    created_at = Column(String(40), nullable=False, default=_now)


_PEPTIDE_FIELDS = [
    "name",
    "aliases",
    "evidence_grade",
    "human_controlled_count",
    "animal_count",
    "summary_html",
    "legal_notes",
    "version",
    "last_updated",
]


@dataclass
class StoreWriteResult:
    """Outcome of write_page, carrying what rollback needs to undo it."""
    peptide_id: str
    slug: str
    version: int
    created: bool
    studies_inserted: int = 0
    sections_inserted: int = 0
    inserted_study_ids: List[str] = field(default_factory=list)
    # Prior peptide row and sections, None when the peptide is new
    snapshot: Optional[dict] = None


class MetadataStore(Protocol):
    """Protocol for the durable page metadata store."""

    async def write_page(self, page: PageRecord) -> StoreWriteResult:
        ...

    async def rollback(self, result: StoreWriteResult) -> None:
        ...

    async def current_version(self, slug: str) -> int:
        ...


class SqlMetadataStore:
    """MetadataStore backed by any SQLAlchemy URL (sqlite by default)."""

    def __init__(self, url: str = "sqlite://"):
        self.url = url
        parsed = make_url(url)
        kwargs = {}
        if parsed.get_backend_name() == "sqlite":
            kwargs["connect_args"] = {"check_same_thread": False}
            if parsed.database in (None, "", ":memory:"):
                # One shared connection, or each thread would see its own empty db
                kwargs["poolclass"] = StaticPool
            else:
                Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(url, **kwargs)
        self._session = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    # === Writes ===

    def _write_page_sync(self, page: PageRecord) -> StoreWriteResult:
        with self._session() as session, session.begin():
            row = session.scalars(select(PeptideRow).where(PeptideRow.slug == page.slug)).first()
            created = row is None
            snapshot = None

            if created:
                row = PeptideRow(id=str(uuid.uuid4()), slug=page.slug)
                session.add(row)
            else:
                prior_sections = session.scalars(
                    select(SectionRow).where(SectionRow.peptide_id == row.id)
                ).all()
                snapshot = {
                    "peptide": {f: getattr(row, f) for f in _PEPTIDE_FIELDS},
                    "sections": [_section_values(s) for s in prior_sections],
                }

            row.name = page.name
            row.aliases = list(page.aliases)
            row.evidence_grade = page.evidence_grade.value
            row.human_controlled_count = page.human_controlled_count
            row.animal_count = page.animal_count
            row.summary_html = page.summary_html
            row.legal_notes = list(page.legal_notes)
            row.version = page.version
            row.last_updated = page.last_updated.isoformat()
            session.flush()

            # Existing study ids are left untouched
            study_ids = [s.id for s in page.studies]
            existing = set(
                session.scalars(select(StudyRow.id).where(StudyRow.id.in_(study_ids))).all()
            ) if study_ids else set()
            inserted = []
            for study in page.studies:
                if study.id in existing or study.id in inserted:
                    continue
                session.add(StudyRow(
                    id=study.id,
                    peptide_id=row.id,
                    kind=study.kind,
                    title=study.title,
                    design=study.design.value,
                    record=study.model_dump(mode="json"),
                ))
                inserted.append(study.id)

            session.execute(delete(SectionRow).where(SectionRow.peptide_id == row.id))
            for section in page.sections:
                session.add(SectionRow(
                    peptide_id=row.id,
                    title=section.title,
                    content_html=section.content_html,
                    plain_language_summary=section.plain_language_summary,
                    section_order=section.order,
                ))

            session.add(ChangelogRow(
                peptide_id=row.id,
                slug=page.slug,
                version=page.version,
                change_type="publish",
                change_summary=f"Published version {page.version} via research pipeline",
            ))

            return StoreWriteResult(
                peptide_id=row.id,
                slug=page.slug,
                version=page.version,
                created=created,
                studies_inserted=len(inserted),
                sections_inserted=len(page.sections),
                inserted_study_ids=inserted,
                snapshot=snapshot,
            )

    async def write_page(self, page: PageRecord) -> StoreWriteResult:
        """Upsert the peptide, insert new studies, replace sections, log the change."""
        result = await asyncio.to_thread(self._write_page_sync, page)
        logger.info(
            f"Wrote {page.slug} v{page.version}: "
            f"{result.studies_inserted} studies, {result.sections_inserted} sections"
        )
        return result

    def _rollback_sync(self, result: StoreWriteResult) -> None:
        with self._session() as session, session.begin():
            session.execute(delete(SectionRow).where(SectionRow.peptide_id == result.peptide_id))
            if result.inserted_study_ids:
                session.execute(delete(StudyRow).where(StudyRow.id.in_(result.inserted_study_ids)))

            if result.created:
                session.execute(delete(PeptideRow).where(PeptideRow.id == result.peptide_id))
            elif result.snapshot:
                row = session.get(PeptideRow, result.peptide_id)
                if row is not None:
                    for name, value in result.snapshot["peptide"].items():
                        setattr(row, name, value)
                for values in result.snapshot["sections"]:
                    session.add(SectionRow(peptide_id=result.peptide_id, **values))

            session.add(ChangelogRow(
                peptide_id=result.peptide_id,
                slug=result.slug,
                version=result.version,
                change_type="rollback",
                change_summary=f"Rolled back version {result.version} due to publish failure",
            ))

    async def rollback(self, result: StoreWriteResult) -> None:
        """Undo a write_page: restore the prior state and log a rollback entry."""
        await asyncio.to_thread(self._rollback_sync, result)
        logger.info(f"Rolled back {result.slug} v{result.version}")

    # === Reads ===

    def _get_peptide_sync(self, slug: str) -> Optional[dict]:
        with self._session() as session:
            row = session.scalars(select(PeptideRow).where(PeptideRow.slug == slug)).first()
            if row is None:
                return None
            data = {f: getattr(row, f) for f in _PEPTIDE_FIELDS}
            data.update(id=row.id, slug=row.slug, created_at=row.created_at)
            return data

    async def get_peptide(self, slug: str) -> Optional[dict]:
        return await asyncio.to_thread(self._get_peptide_sync, slug)

    def _get_sections_sync(self, slug: str) -> List[Section]:
        with self._session() as session:
            rows = session.scalars(
                select(SectionRow)
                .join(PeptideRow, SectionRow.peptide_id == PeptideRow.id)
                .where(PeptideRow.slug == slug)
                .order_by(SectionRow.section_order)
            ).all()
            return [
                Section(
                    title=r.title,
                    content_html=r.content_html,
                    plain_language_summary=r.plain_language_summary,
                    order=r.section_order,
                )
                for r in rows
            ]

    async def get_sections(self, slug: str) -> List[Section]:
        return await asyncio.to_thread(self._get_sections_sync, slug)

    def _get_study_ids_sync(self, slug: str) -> List[str]:
        with self._session() as session:
            return list(session.scalars(
                select(StudyRow.id)
                .join(PeptideRow, StudyRow.peptide_id == PeptideRow.id)
                .where(PeptideRow.slug == slug)
                .order_by(StudyRow.id)
            ).all())

    async def get_study_ids(self, slug: str) -> List[str]:
        """Ids of studies first stored by this peptide."""
        return await asyncio.to_thread(self._get_study_ids_sync, slug)

    def _get_changelog_sync(self, slug: str) -> List[dict]:
        with self._session() as session:
            rows = session.scalars(
                select(ChangelogRow).where(ChangelogRow.slug == slug).order_by(ChangelogRow.id)
            ).all()
            return [
                {
                    "version": r.version,
                    "change_type": r.change_type,
                    "change_summary": r.change_summary,
                    "changed_by": r.changed_by,
                    "created_at": r.created_at,
                }
                for r in rows
            ]

    async def get_changelog(self, slug: str) -> List[dict]:
        return await asyncio.to_thread(self._get_changelog_sync, slug)

    async def current_version(self, slug: str) -> int:
        """Published version for the slug, 0 if it was never published."""
        peptide = await self.get_peptide(slug)
        return peptide["version"] if peptide else 0

    def _list_peptides_sync(self) -> List[dict]:
        with self._session() as session:
            rows = session.scalars(select(PeptideRow).order_by(PeptideRow.slug)).all()
            return [
                {
                    "slug": r.slug,
                    "name": r.name,
                    "evidence_grade": r.evidence_grade,
                    "version": r.version,
                    "last_updated": r.last_updated,
                }
                for r in rows
            ]

    async def list_peptides(self) -> List[dict]:
        return await asyncio.to_thread(self._list_peptides_sync)


def _section_values(row: SectionRow) -> dict:
    return {
        "title": row.title,
        "content_html": row.content_html,
        "plain_language_summary": row.plain_language_summary,
        "section_order": row.section_order,
    }
