import asyncio

import httpx
import pytest

from conftest import FakeSource, make_article, make_trial
from peptide_pages.config import PubMedConfig, TrialsConfig
from peptide_pages.discovery import clinicaltrials, pubmed
from peptide_pages.discovery.clinicaltrials import ClinicalTrialsSource, parse_trial
from peptide_pages.discovery.ingest import get_sources, ingest
from peptide_pages.discovery.pubmed import PubMedSource, infer_design, parse_medline_record
from peptide_pages.errors import IngestError
from peptide_pages.models import LiteratureStudy, RegistryTrial, StudyDesign

LONG_ABSTRACT = "Background and methods describing the work in enough detail to pass the filter."


class TestPubMedDesign:
    @pytest.mark.parametrize("title,abstract,expected", [
        ("A randomized controlled trial of BPC-157", "", StudyDesign.HUMAN_CONTROLLED_TRIAL),
        ("BPC-157 in patients", "A double-blind study", StudyDesign.HUMAN_CONTROLLED_TRIAL),
        ("Outcomes in patients after injury", "a retrospective review", StudyDesign.HUMAN_OBSERVATIONAL),
        ("A case report of a patient", "", StudyDesign.HUMAN_CASE_REPORT),
        ("Effects on fibroblasts", "in vitro cell culture assays", StudyDesign.ANIMAL_IN_VITRO),
        ("Tendon healing in rats", "rats were treated", StudyDesign.ANIMAL_IN_VIVO),
        ("Fibroblast migration in vitro", "confirmed in a rat wound model", StudyDesign.ANIMAL_IN_VIVO),
        ("Unclassifiable title", "", StudyDesign.ANIMAL_IN_VIVO),
    ])
    def test_infer_design(self, title, abstract, expected):
        assert infer_design(title, abstract) == expected

    def test_keywords_match_whole_words(self):
        # "rct" inside "direct" must not make this a controlled trial
        assert infer_design("Direct effects on mice", "") == StudyDesign.ANIMAL_IN_VIVO


def test_pubmed_query_quotes_every_term():
    assert pubmed.build_query("BPC-157", ["Body Protection Compound", ""]) == '"BPC-157" OR "Body Protection Compound"'


def test_parse_medline_record():
    record = {
        "PMID": "12345678",
        "TI": "BPC-157 and tendon healing",
        "AB": LONG_ABSTRACT,
        "AU": ["Smith J", "Doe A"],
        "JT": "Journal of Tests",
        "DP": "2019 Mar 4",
        "AID": ["S0000 [pii]", "10.1000/xyz123 [doi]"],
    }
    article = parse_medline_record(record)
    assert article["pmid"] == "12345678"
    assert article["year"] == 2019
    assert article["doi"] == "10.1000/xyz123"
    assert article["authors"] == ["Smith J", "Doe A"]


def test_parse_medline_record_bad_date():
    assert parse_medline_record({"PMID": "1", "DP": "Spring"})["year"] is None


def test_to_study_and_validity():
    article = {"pmid": "42", "title": "Rats and tendons", "abstract": LONG_ABSTRACT, "year": 2020}
    assert pubmed.is_valid_article(article)
    assert not pubmed.is_valid_article({**article, "abstract": "short"})
    study = pubmed.to_study(article)
    assert isinstance(study, LiteratureStudy)
    assert study.id == "PMID:42"
    assert study.design == StudyDesign.ANIMAL_IN_VIVO


def test_pubmed_source_filters_and_converts(monkeypatch):
    articles = [
        {"pmid": "1", "title": "Rats", "abstract": LONG_ABSTRACT},
        {"pmid": "2", "title": "No abstract", "abstract": ""},
    ]
    seen = {}

    def fake_search(query, email, api_key, max_results, batch_size):
        seen["query"] = query
        return articles

    monkeypatch.setattr(pubmed, "search_articles", fake_search)
    studies = asyncio.run(PubMedSource(PubMedConfig()).fetch("BPC-157", ["PL 14736"]))
    assert [s.id for s in studies] == ["PMID:1"]
    assert seen["query"] == '"BPC-157" OR "PL 14736"'


def test_pubmed_source_wraps_errors(monkeypatch):
    def boom(*args):
        raise RuntimeError("NCBI unavailable")

    monkeypatch.setattr(pubmed, "search_articles", boom)
    with pytest.raises(IngestError) as exc:
        asyncio.run(PubMedSource(PubMedConfig()).fetch("BPC-157", []))
    assert exc.value.source == "pubmed"
    assert "NCBI unavailable" in str(exc.value)


def ct_study(nct_id, title, study_type="INTERVENTIONAL", phases=("PHASE2",), conditions=("Tendinopathy",), interventions=("BPC-157",)):
    return {
        "protocolSection": {
            "identificationModule": {"nctId": nct_id, "briefTitle": title},
            "statusModule": {
                "overallStatus": "COMPLETED",
                "startDateStruct": {"date": "2021-04"},
            },
            "designModule": {
                "studyType": study_type,
                "phases": list(phases),
                "enrollmentInfo": {"count": 40},
            },
            "conditionsModule": {"conditions": list(conditions)},
            "armsInterventionsModule": {"interventions": [{"name": n} for n in interventions]},
        }
    }


class TestClinicalTrials:
    def test_parse_trial(self):
        trial = parse_trial(ct_study("NCT01234567", "BPC-157 for tendon pain"))
        assert trial["nct_id"] == "NCT01234567"
        assert trial["phase"] == "PHASE2"
        assert trial["enrollment"] == 40
        assert trial["interventions"] == ["BPC-157"]

    def test_parse_trial_without_protocol(self):
        assert parse_trial({}) is None

    def test_observational_design(self):
        trial = parse_trial(ct_study("NCT1", "Registry of users", study_type="OBSERVATIONAL"))
        assert clinicaltrials.infer_design(trial) == StudyDesign.HUMAN_OBSERVATIONAL

    def test_interventional_defaults_to_controlled(self):
        trial = parse_trial(ct_study("NCT1", "BPC-157 versus placebo"))
        assert clinicaltrials.infer_design(trial) == StudyDesign.HUMAN_CONTROLLED_TRIAL

    @pytest.mark.parametrize("title,phases,expected", [
        ("Randomized trial in a cohort of athletes", (), StudyDesign.HUMAN_CONTROLLED_TRIAL),
        ("Cohort of athletes receiving BPC-157", ("PHASE3",), StudyDesign.HUMAN_CONTROLLED_TRIAL),
        ("Cohort of athletes receiving BPC-157", ("NA",), StudyDesign.HUMAN_OBSERVATIONAL),
        ("Case series of tendon injuries", (), StudyDesign.HUMAN_CASE_REPORT),
        ("Case series of tendon injuries", ("PHASE1",), StudyDesign.HUMAN_CONTROLLED_TRIAL),
    ])
    def test_controlled_keywords_and_phase(self, title, phases, expected):
        trial = parse_trial(ct_study("NCT1", title, phases=phases))
        assert clinicaltrials.infer_design(trial) == expected

    def test_source_uses_api(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"studies": [
                ct_study("NCT01234567", "BPC-157 for tendon pain"),
                ct_study("NCT07654321", "No interventions listed", interventions=()),
            ]})

        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await ClinicalTrialsSource(TrialsConfig(), client=client).fetch("BPC-157", ["PL 14736"])

        studies = asyncio.run(run())
        assert [s.id for s in studies] == ["NCT:NCT01234567"]
        assert isinstance(studies[0], RegistryTrial)
        assert requests[0].url.params["query.term"] == "BPC-157 OR PL 14736"


class TestIngest:
    def test_merges_all_sources(self):
        sources = [
            FakeSource("pubmed", [make_article("1"), make_article("2")]),
            FakeSource("clinicaltrials", [make_trial("NCT1")]),
        ]
        result = asyncio.run(ingest("bpc-157", "BPC-157", [], sources))
        assert len(result.study_set.studies) == 3
        assert result.study_set.source_counts == {"pubmed": 2, "clinicaltrials": 1}
        assert not result.partial

    def test_one_failing_source_is_partial(self):
        sources = [
            FakeSource("pubmed", [make_article("1")]),
            FakeSource("clinicaltrials", error=IngestError("clinicaltrials", "BPC-157", "rate limited")),
        ]
        result = asyncio.run(ingest("bpc-157", "BPC-157", [], sources))
        assert result.partial
        assert result.errors == {"clinicaltrials": "rate limited"}
        assert [s.id for s in result.study_set.studies] == ["PMID:1"]

    def test_all_sources_failing_raises(self):
        sources = [
            FakeSource("pubmed", error=RuntimeError("down")),
            FakeSource("clinicaltrials", error=RuntimeError("down too")),
        ]
        with pytest.raises(IngestError):
            asyncio.run(ingest("bpc-157", "BPC-157", [], sources))

    def test_default_sources(self, config):
        assert [s.name for s in get_sources(config)] == ["pubmed", "clinicaltrials"]
