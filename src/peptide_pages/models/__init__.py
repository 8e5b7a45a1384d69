from .evidence import EvidenceGrade
from .page import DEFAULT_LEGAL_NOTES, PageRecord, Section, calculate_study_counts
from .study import (
    DESIGN_PRIORITY,
    LiteratureStudy,
    PeptideInput,
    RegistryTrial,
    Study,
    StudyDesign,
    StudySet,
    slugify,
)

__all__ = [
    "DEFAULT_LEGAL_NOTES",
    "DESIGN_PRIORITY",
    "EvidenceGrade",
    "LiteratureStudy",
    "PageRecord",
    "PeptideInput",
    "RegistryTrial",
    "Section",
    "Study",
    "StudyDesign",
    "StudySet",
    "calculate_study_counts",
    "slugify",
]
