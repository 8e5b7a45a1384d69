import asyncio
import json

import pytest

from conftest import FakeGenerator, make_article, make_page, make_trial
from peptide_pages.audit.citations import audit_citations, audit_page, extract_citations
from peptide_pages.audit.compliance import (
    ComplianceChecker,
    LLMAuditor,
    has_disclaimer,
    parse_audit_response,
    quick_validate,
)
from peptide_pages.errors import AuditError
from peptide_pages.models import Section


class TestCitations:
    def test_extract_distinct_ids(self):
        html = "<p>[PMID:1] and [NCT:NCT2] and again [PMID:1]</p>"
        assert extract_citations(html) == {"PMID:1", "NCT:NCT2"}

    @pytest.mark.parametrize("token", ["[pmid:1]", "[PMID: 1]", "(PMID:1)"])
    def test_malformed_tokens_are_ignored(self, token):
        assert extract_citations(f"<p>Reported {token}.</p>") == set()

    def test_uncited_claim_sentence(self):
        html = "<p>Treatment improved healing in rats [PMID:1]. It also reduced inflammation markers in tissue.</p>"
        audit = audit_citations(html)
        assert audit.citation_count == 1
        assert audit.missing_claims == ["It also reduced inflammation markers in tissue"]
        assert not audit.passed

    def test_no_citations_never_passes(self):
        assert not audit_citations("<p>Little is known about this peptide.</p>").passed

    def test_short_fragments_are_ignored(self):
        assert audit_citations("<p>It improved [PMID:1]. Improved a lot.</p>").missing_claims == []

    def test_every_study_cited_round_trips(self):
        studies = [make_article("11"), make_article("12"), make_trial("NCT00000003")]
        page = make_page(studies)
        assert extract_citations(page.content_html()) == {s.id for s in studies}
        audit = audit_page(page)
        assert audit.uncited_studies == []
        assert audit.unknown_citations == []
        assert audit.passed
        assert audit.complete

    def test_uncited_and_unknown_studies(self):
        studies = [make_article("11"), make_article("12")]
        page = make_page(
            studies,
            summary_html="<p>One report described improved healing [PMID:999].</p>",
            sections=[Section(title="Animal Research", content_html="<p>Rats reported improved healing [PMID:11].</p>", order=0)],
        )
        audit = audit_page(page)
        assert audit.uncited_studies == ["PMID:12"]
        assert audit.unknown_citations == ["PMID:999"]
        assert not audit.passed
        assert not audit.complete

    def test_uncited_study_is_incomplete(self):
        studies = [make_article("11"), make_article("12")]
        page = make_page(
            studies,
            summary_html="<p>One report described improved healing [PMID:11].</p>",
            sections=[Section(title="Animal Research", content_html="<p>Rats reported improved healing [PMID:11].</p>", order=0)],
        )
        audit = audit_page(page)
        assert audit.passed
        assert not audit.complete
        assert audit.uncited_studies == ["PMID:12"]


class TestQuickValidate:
    def test_clean_page_passes(self):
        result = quick_validate(make_page())
        assert result.passed
        assert result.score == 100
        assert result.issues == []
        assert result.mode == "quick"

    def test_missing_disclaimer(self):
        result = quick_validate(make_page(legal_notes=["Read carefully."]))
        assert not result.passed
        assert result.score == 0
        assert [i.type for i in result.critical_issues] == ["disclaimer"]

    @pytest.mark.parametrize("summary,issue_type", [
        ("<p>You should take this peptide every morning [PMID:1001].</p>", "medical_advice"),
        ("<p>Participants used 250 mcg daily in the trial [PMID:1001].</p>", "dosing"),
        ("<p>It is available at several online shops [PMID:1001].</p>", "vendor"),
    ])
    def test_critical_content(self, summary, issue_type):
        result = quick_validate(make_page(summary_html=summary))
        assert not result.passed
        assert [i.type for i in result.critical_issues] == [issue_type]

    def test_uncited_claim_is_a_warning(self):
        result = quick_validate(make_page(summary_html="<p>Treatment improved recovery times in several animal models.</p>"))
        assert result.passed
        assert result.score == 90
        assert [(i.type, i.severity) for i in result.issues] == [("claims", "warning")]
        assert "warning" in result.summary()

    def test_disclaimer_wording(self):
        assert has_disclaimer(["Educational use only.", "This is not medical advice."])
        assert not has_disclaimer(["Educational use only."])


VERDICT = {"passed": True, "score": 92, "issues": [], "fixed_text": None}


class TestAuditResponse:
    def test_plain_json(self):
        assert parse_audit_response(json.dumps(VERDICT)).score == 92

    def test_fenced_json_with_preamble(self):
        text = "Here is my review:\n```json\n" + json.dumps(VERDICT) + "\n```"
        assert parse_audit_response(text).passed

    def test_embedded_object(self):
        assert parse_audit_response('Verdict: {"passed": false, "score": 40} done').score == 40

    @pytest.mark.parametrize("text", ["no json here", '{"passed": true, "score": "high"}'])
    def test_unparseable(self, text):
        with pytest.raises(AuditError):
            parse_audit_response(text)

    @pytest.mark.parametrize("score,expected", [(92.4, 92), (150, 100), (-3, 0), (88.0, 88)])
    def test_score_rounded_and_clamped(self, score, expected):
        text = json.dumps({"passed": True, "score": score, "issues": []})
        response = parse_audit_response(text)
        assert response.score == expected
        assert response.passed


def run_checker(responses, config):
    generator = FakeGenerator(responses)
    checker = ComplianceChecker(LLMAuditor(generator, config.compliance), config.compliance)
    return generator, asyncio.run(checker.validate(make_page()))


class TestComplianceChecker:
    def test_passing_audit(self, config):
        verdict = dict(VERDICT, fixed_text="<p>Rewritten.</p>")
        generator, result = run_checker([json.dumps(verdict)], config)
        assert result.passed
        assert result.mode == "full"
        assert result.fixed_text == "<p>Rewritten.</p>"
        assert result.cost == pytest.approx(0.0075)
        assert "DISCLAIMERS:" in generator.calls[0]["prompt"]
        assert "compliance validator" in generator.calls[0]["system"]

    def test_critical_issue_overrides_verdict(self, config):
        verdict = dict(VERDICT, issues=[{"type": "dosing", "severity": "critical", "description": "dose given"}])
        _, result = run_checker([json.dumps(verdict)], config)
        assert not result.passed
        assert len(result.critical_issues) == 1

    def test_request_failure(self, config):
        with pytest.raises(AuditError) as exc:
            run_checker([RuntimeError("503")], config)
        assert exc.value.usage is None

    def test_unusable_response(self, config):
        with pytest.raises(AuditError) as exc:
            run_checker(["I cannot review this."], config)
        assert exc.value.usage.total == 1500
