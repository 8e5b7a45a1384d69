from conftest import make_article, make_trial
from peptide_pages.analysis.normalizer import (
    deduplicate_by_id,
    filter_by_quality,
    limit_by_category,
    normalize,
    normalize_study_set,
    sort_by_relevance,
    study_year,
)
from peptide_pages.models import StudyDesign, StudySet


def test_first_occurrence_wins():
    first = make_article("1", title="First copy")
    second = make_article("1", title="Second copy")
    assert deduplicate_by_id([first, second]) == [first]


def test_normalize_is_idempotent(studies):
    once = normalize(studies + studies[:2])
    assert normalize(once) == once
    assert len(once) == len(studies)


def test_human_before_animal_and_stronger_designs_first(studies):
    ordered = [s.design for s in normalize(list(reversed(studies)))]
    assert ordered == [
        StudyDesign.HUMAN_CONTROLLED_TRIAL,
        StudyDesign.HUMAN_CONTROLLED_TRIAL,
        StudyDesign.HUMAN_OBSERVATIONAL,
        StudyDesign.ANIMAL_IN_VIVO,
        StudyDesign.ANIMAL_IN_VITRO,
    ]


def test_newest_first_within_tier():
    old = make_article("1", year=2001)
    new = make_article("2", year=2023)
    assert sort_by_relevance([old, new]) == [new, old]


def test_trial_year_from_start_date():
    assert study_year(make_trial("NCT1", start_date="2019-05-01")) == 2019
    assert study_year(make_trial("NCT1", start_date="March 2020")) == 2020


def test_unknown_year_sorts_last_in_tier():
    unknown = make_trial("NCT1", start_date="not a date")
    missing = make_trial("NCT2", start_date=None)
    dated = make_trial("NCT3", start_date="2010")
    assert study_year(unknown) is None
    assert sort_by_relevance([unknown, missing, dated])[0] == dated
    # Still ahead of a weaker tier
    animal = make_article("9", StudyDesign.ANIMAL_IN_VIVO, year=2024)
    assert sort_by_relevance([animal, unknown])[0] == unknown


def test_normalize_study_set_refreshes_counts():
    study_set = StudySet(
        slug="bpc-157",
        name="BPC-157",
        studies=[make_article("1"), make_article("1"), make_trial("NCT1")],
        source_counts={"pubmed": 2, "clinicaltrials": 1},
    )
    normalized = normalize_study_set(study_set)
    assert len(normalized.studies) == 2
    assert normalized.source_counts == {"NCT": 1, "PMID": 1}
    assert len(study_set.studies) == 3


def test_quality_filter():
    short = make_article("1", abstract="Too short.")
    good = make_article("2")
    no_interventions = make_trial("NCT1", interventions=[])
    trial = make_trial("NCT2")
    assert filter_by_quality([short, good, no_interventions, trial]) == [good, trial]


def test_limit_by_category_preserves_order():
    studies = [make_article(str(i), StudyDesign.ANIMAL_IN_VIVO) for i in range(5)]
    studies.insert(2, make_trial("NCT1"))
    limited = limit_by_category(studies, {"animal_in_vivo": 2, StudyDesign.HUMAN_CONTROLLED_TRIAL: None})
    assert [s.id for s in limited] == ["PMID:0", "PMID:1", "NCT:NCT1"]


def test_limit_by_category_without_limits():
    studies = [make_article(str(i)) for i in range(3)]
    assert limit_by_category(studies, {}) == studies
