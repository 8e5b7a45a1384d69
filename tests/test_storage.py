import asyncio

import pytest

from conftest import make_article, make_page
from peptide_pages.models import Section
from peptide_pages.publish.storage import META_SUFFIX, LocalObjectStore, build_pdf_key
from peptide_pages.publish.store import SqlMetadataStore


def test_pdf_key():
    assert build_pdf_key("bpc-157", 3) == "pdfs/bpc-157/bpc-157-v3.pdf"


class TestLocalObjectStore:
    def test_put_head_get_delete(self, tmp_path):
        objects = LocalObjectStore(tmp_path, public_url="https://cdn.example.org/")
        key = build_pdf_key("bpc-157")

        info = asyncio.run(objects.put(key, b"%PDF-1.7 data", "application/pdf"))
        assert info.size_bytes == 13
        assert info.url == "https://cdn.example.org/pdfs/bpc-157/bpc-157-v1.pdf"

        head = asyncio.run(objects.head(key))
        assert head == info
        assert asyncio.run(objects.get(key)) == b"%PDF-1.7 data"

        assert asyncio.run(objects.delete(key))
        assert asyncio.run(objects.head(key)) is None
        assert not asyncio.run(objects.delete(key))

    def test_file_urls_without_public_url(self, tmp_path):
        objects = LocalObjectStore(tmp_path)
        assert objects.url_for("pdfs/a/a-v1.pdf").startswith("file://")

    def test_missing_object(self, tmp_path):
        objects = LocalObjectStore(tmp_path)
        assert asyncio.run(objects.get("pdfs/none.pdf")) is None

    def test_keys_cannot_escape_root(self, tmp_path):
        objects = LocalObjectStore(tmp_path / "objects")
        with pytest.raises(ValueError):
            asyncio.run(objects.put("../outside.pdf", b"x", "application/pdf"))

    def test_failed_sidecar_leaves_no_object(self, tmp_path):
        objects = LocalObjectStore(tmp_path)
        key = build_pdf_key("bpc-157")
        # A directory where the sidecar should go makes its write fail
        (tmp_path / (key + META_SUFFIX)).mkdir(parents=True)

        with pytest.raises(OSError):
            asyncio.run(objects.put(key, b"%PDF-1.7 data", "application/pdf"))
        assert not (tmp_path / key).exists()


@pytest.fixture
def store():
    return SqlMetadataStore("sqlite://")


class TestSqlMetadataStore:
    def test_write_new_page(self, store):
        page = make_page()
        result = asyncio.run(store.write_page(page))
        assert result.created
        assert result.studies_inserted == 2
        assert result.sections_inserted == 1

        peptide = asyncio.run(store.get_peptide("bpc-157"))
        assert peptide["version"] == 1
        assert peptide["evidence_grade"] == "moderate"
        assert asyncio.run(store.get_study_ids("bpc-157")) == ["NCT:NCT00000001", "PMID:1001"]
        assert asyncio.run(store.get_sections("bpc-157")) == page.sections
        assert [c["change_type"] for c in asyncio.run(store.get_changelog("bpc-157"))] == ["publish"]

    def test_file_database(self, tmp_path):
        store = SqlMetadataStore(f"sqlite:///{tmp_path / 'nested' / 'pages.db'}")
        asyncio.run(store.write_page(make_page()))
        assert asyncio.run(store.current_version("bpc-157")) == 1
        assert (tmp_path / "nested" / "pages.db").exists()

    def test_existing_studies_are_not_duplicated(self, store):
        asyncio.run(store.write_page(make_page()))
        other = make_page(slug="tb-500", name="TB-500")
        result = asyncio.run(store.write_page(other))
        assert result.studies_inserted == 0
        assert asyncio.run(store.get_study_ids("tb-500")) == []
        assert [p["slug"] for p in asyncio.run(store.list_peptides())] == ["bpc-157", "tb-500"]

    def test_rollback_of_new_page_leaves_nothing(self, store):
        result = asyncio.run(store.write_page(make_page()))
        asyncio.run(store.rollback(result))
        assert asyncio.run(store.get_peptide("bpc-157")) is None
        assert asyncio.run(store.get_sections("bpc-157")) == []
        assert asyncio.run(store.current_version("bpc-157")) == 0
        changelog = asyncio.run(store.get_changelog("bpc-157"))
        assert [c["change_type"] for c in changelog] == ["publish", "rollback"]

    def test_rollback_restores_prior_version(self, store):
        first = make_page()
        asyncio.run(store.write_page(first))

        studies = first.studies + [make_article("2002")]
        second = make_page(
            studies,
            sections=[Section(title="Rewritten", content_html="<p>New body [PMID:2002].</p>", order=0)],
        ).with_version(2)
        result = asyncio.run(store.write_page(second))
        assert not result.created
        assert result.inserted_study_ids == ["PMID:2002"]

        asyncio.run(store.rollback(result))
        assert asyncio.run(store.current_version("bpc-157")) == 1
        assert asyncio.run(store.get_sections("bpc-157")) == first.sections
        assert "PMID:2002" not in asyncio.run(store.get_study_ids("bpc-157"))
