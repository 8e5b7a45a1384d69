"""Pydantic schemas exchanged with text-generation and auditing providers."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


class Generation(BaseModel):
    """Raw text returned by a text-generation provider."""

    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""


class AuditIssue(BaseModel):
    type: str = Field(
        default="other",
        description="medical_advice | dosing | vendor | claims | disclaimer | safety | other",
    )
    severity: str = Field(default="warning", description="critical | warning | info")
    description: str = ""
    location: Optional[str] = Field(default=None, description="Exact quote from the content")


class AuditResponse(BaseModel):
    """Structured verdict from an auditing provider."""

    passed: bool = False
    score: int = Field(default=0, ge=0, le=100)
    issues: list[AuditIssue] = Field(default_factory=list)
    fixed_text: Optional[str] = Field(
        default=None,
        description="Corrected content with violations rewritten, when the auditor proposes one",
    )
    usage: TokenUsage = Field(default_factory=TokenUsage)

    @field_validator("score", mode="before")
    @classmethod
    def round_score(cls, value):
        # Auditors sometimes answer 92.5 or 105; keep the verdict, bound the score
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return max(0, min(100, round(value)))
        return value
