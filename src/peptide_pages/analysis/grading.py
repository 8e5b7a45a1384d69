"""Evidence grading rubric.

Grades evidence quality from study-design counts alone:

    high      3+ human controlled trials
    moderate  1-2 human controlled trials, or 3+ human observational studies
    low       5+ animal studies (in vivo + in vitro)
    very_low  everything else

The grade is a pure function of the counts, so study order never matters.
"""

from dataclasses import dataclass

from ..models import EvidenceGrade, StudyDesign

HIGH_MIN_CONTROLLED = 3
MODERATE_MIN_OBSERVATIONAL = 3
LOW_MIN_ANIMAL = 5


@dataclass(frozen=True)
class StudyCounts:
    """Study counts per design tier."""
    human_controlled: int = 0
    human_observational: int = 0
    human_case_report: int = 0
    animal_in_vivo: int = 0
    animal_in_vitro: int = 0

    @property
    def human_total(self) -> int:
        return self.human_controlled + self.human_observational + self.human_case_report

    @property
    def animal_total(self) -> int:
        return self.animal_in_vivo + self.animal_in_vitro

    @property
    def total(self) -> int:
        return self.human_total + self.animal_total


def count_studies(studies: list) -> StudyCounts:
    tally = {design: 0 for design in StudyDesign}
    for study in studies:
        tally[study.design] += 1
    return StudyCounts(
        human_controlled=tally[StudyDesign.HUMAN_CONTROLLED_TRIAL],
        human_observational=tally[StudyDesign.HUMAN_OBSERVATIONAL],
        human_case_report=tally[StudyDesign.HUMAN_CASE_REPORT],
        animal_in_vivo=tally[StudyDesign.ANIMAL_IN_VIVO],
        animal_in_vitro=tally[StudyDesign.ANIMAL_IN_VITRO],
    )


def grade_counts(counts: StudyCounts) -> EvidenceGrade:
    if counts.human_controlled >= HIGH_MIN_CONTROLLED:
        return EvidenceGrade.HIGH
    if counts.human_controlled >= 1 or counts.human_observational >= MODERATE_MIN_OBSERVATIONAL:
        return EvidenceGrade.MODERATE
    if counts.animal_total >= LOW_MIN_ANIMAL:
        return EvidenceGrade.LOW
    return EvidenceGrade.VERY_LOW


def grade_evidence(studies: list) -> EvidenceGrade:
    """Grade a study set. An empty set is very_low."""
    return grade_counts(count_studies(studies))


def meets_minimum_quality(studies: list, minimum: EvidenceGrade = EvidenceGrade.MODERATE) -> bool:
    return grade_evidence(studies).meets(minimum)


def explain_grade(studies: list) -> str:
    """Human-readable rationale for the grade."""
    counts = count_studies(studies)
    grade = grade_counts(counts)

    if grade == EvidenceGrade.HIGH:
        return f"HIGH quality: {counts.human_controlled} human controlled trial(s) provide strong evidence."

    if grade == EvidenceGrade.MODERATE:
        if counts.human_controlled > 0:
            others = counts.human_total - counts.human_controlled
            return (
                f"MODERATE quality: {counts.human_controlled} human controlled trial(s) "
                f"plus {others} other human study(ies)."
            )
        return f"MODERATE quality: {counts.human_observational} human observational study(ies)."

    if grade == EvidenceGrade.LOW:
        return f"LOW quality: {counts.animal_total} animal study(ies), no controlled human research."

    if counts.animal_total > 0:
        return f"VERY LOW quality: only {counts.animal_total} animal study(ies), limited evidence."
    if counts.human_total > 0:
        return f"VERY LOW quality: only {counts.human_total} human case report(s) or small observational study(ies)."
    return "VERY LOW quality: minimal evidence available."


def missing_for_upgrade(studies: list) -> list[str]:
    """What additional evidence would raise the grade by one tier."""
    counts = count_studies(studies)
    grade = grade_counts(counts)
    suggestions = []

    if grade == EvidenceGrade.VERY_LOW:
        suggestions.append(
            f"{LOW_MIN_ANIMAL - counts.animal_total} more animal study(ies) to reach LOW quality"
        )
    elif grade == EvidenceGrade.LOW:
        needed_obs = MODERATE_MIN_OBSERVATIONAL - counts.human_observational
        suggestions.append(
            f"1 human controlled trial or {needed_obs} more human observational study(ies) "
            f"to reach MODERATE quality"
        )
    elif grade == EvidenceGrade.MODERATE:
        needed = HIGH_MIN_CONTROLLED - counts.human_controlled
        suggestions.append(f"{needed} more human controlled trial(s) to reach HIGH quality")

    return suggestions
