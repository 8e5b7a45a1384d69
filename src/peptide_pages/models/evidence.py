"""Ordered evidence-quality grade."""

from enum import Enum


class EvidenceGrade(str, Enum):
    """Evidence quality tier, ordered very_low < low < moderate < high."""

    VERY_LOW = "very_low"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RANK[self.value]

    @property
    def label(self) -> str:
        """Display label: "very_low" -> "Very Low"."""
        return " ".join(word.capitalize() for word in self.value.split("_"))

    def meets(self, minimum: "EvidenceGrade") -> bool:
        return self.rank >= EvidenceGrade(minimum).rank

    def is_high_quality(self) -> bool:
        return self.meets(EvidenceGrade.MODERATE)

    def __lt__(self, other):
        if not isinstance(other, EvidenceGrade):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, EvidenceGrade):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, EvidenceGrade):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, EvidenceGrade):
            return NotImplemented
        return self.rank >= other.rank


_RANK = {"very_low": 0, "low": 1, "moderate": 2, "high": 3}
