"""Prompt templates for synthesis, plain-language rewriting and compliance audits.

All generated content is educational: every empirical claim carries an inline
citation token, protocols are reported rather than recommended, and human and
animal evidence are kept in separate sections.
"""

import re

from ..models import LiteratureStudy, RegistryTrial

SYSTEM_PROMPT = """You are an evidence-synthesis writer for a peptides reference platform.

CRITICAL RULES:
1. Educational content only. Never provide medical advice, dosing recommendations, or procurement guidance.
2. Every empirical claim MUST cite its source inline using the study id in square brackets, e.g. "improved healing [PMID:12345678]".
3. Use "reported" language, never "recommended" (e.g. "Studies reported..." not "We recommend...").
4. Distinguish human vs animal evidence clearly in separate sections.
5. Present conflicting findings honestly; do not cherry-pick results.
6. HTML output only, using <p>, <ul>, <li>, <strong>, <em> and <h2> tags.
7. No speculative claims beyond what the studies directly show.

OUTPUT STRUCTURE:
- Summary paragraph (2-3 sentences, high-level overview with key findings)
- Human Research section (if human studies exist)
- Animal Research section (if animal studies exist)
- Mechanisms of Action section (if known)
- Safety & Side Effects section (adverse events reported, open safety questions)

CITATION FORMAT:
- PubMed: [PMID:12345678]
- ClinicalTrials.gov: [NCT:NCT01234567]

Always cite inline, never in footnotes or a references section.

TONE:
- Professional, objective, factual
- No marketing language or hype
- Present limitations and gaps in the evidence
- Neutral on efficacy; let the evidence speak"""


PLAIN_LANGUAGE_SYSTEM_PROMPT = """You translate scientific and medical content into simple language for non-scientists.

Write plain-language summaries that:
- Use everyday words (8th-grade reading level)
- Avoid jargon, or explain it when unavoidable
- Are 2-3 sentences long
- Stay accurate while simplifying
- Never advise the reader to take, dose or buy anything

Output ONLY the summary text. No formatting, no labels, no extra commentary."""


COMPLIANCE_CHECKLIST = """You are a compliance validator for educational peptide content.

REVIEW THE CONTENT AGAINST THIS CHECKLIST:

CRITICAL (must fix):
1. Missing disclaimer: the content must state it is educational and not medical advice.
2. Medical advice or prescriptive verbs (e.g. "you should take", "we recommend").
3. Dosage instructions (e.g. "take 250mcg daily"). Doses may only be described as reported in a cited study.
4. Vendor, purchase or procurement content (e.g. "buy from X", "available at Y").
5. Empirical claims without an inline [REGISTRY:ID] citation.

WARNINGS (should fix):
6. Protocols framed as recommendations instead of "reported" findings.
7. Safety uncertainties or missing long-term data not surfaced.
8. Promotional or absolute language ("miracle", "guaranteed", "always works").

EVALUATE:
- Assign a compliance score from 0 to 100 (100 = fully compliant).
- List every issue with a severity and an exact quote.
- Set "passed" to false if any critical issue exists.
- If you can fix the violations without changing cited facts, return the corrected content as "fixed_text"."""


AUDIT_RESPONSE_FORMAT = """
RETURN ONLY JSON:
{
  "passed": true,
  "score": 95,
  "issues": [
    {
      "type": "medical_advice | dosing | vendor | claims | disclaimer | safety | other",
      "severity": "critical | warning | info",
      "description": "explanation",
      "location": "exact quote from content"
    }
  ],
  "fixed_text": null
}"""


def format_study(study) -> str:
    """Format one study as a prompt block, headed by its citation token."""
    lines = [f"[{study.id}] {study.title}", f"Design: {study.design.value}"]

    if isinstance(study, LiteratureStudy):
        lines.append(f"Journal: {study.journal or 'Unknown'} ({study.year or 'n.d.'})")
        if study.abstract:
            lines.append(f"Abstract: {study.abstract}")
    elif isinstance(study, RegistryTrial):
        lines.append(f"Status: {study.status}")
        if study.phase:
            lines.append(f"Phase: {study.phase}")
        lines.append(f"Conditions: {', '.join(study.conditions)}")
        lines.append(f"Interventions: {', '.join(study.interventions)}")
        if study.enrollment:
            lines.append(f"Enrollment: {study.enrollment}")

    return "\n".join(lines) + "\n"


def build_synthesis_prompt(peptide_name: str, aliases: list, studies: list, grade) -> str:
    """Build the user prompt listing every study, human evidence first."""
    alias_text = f" (also known as: {', '.join(aliases)})" if aliases else ""
    human = [s for s in studies if s.design.is_human]
    animal = [s for s in studies if s.design.is_animal]

    parts = [
        f"Synthesize the evidence for {peptide_name}{alias_text}.",
        "",
        f"Evidence Grade: {grade.value.upper()}",
        f"Total Studies: {len(studies)} ({len(human)} human, {len(animal)} animal)",
        "",
    ]

    if human:
        parts.append(f"HUMAN STUDIES ({len(human)}):")
        parts.append("")
        parts.extend(format_study(s) for s in human)

    if animal:
        parts.append(f"ANIMAL STUDIES ({len(animal)}):")
        parts.append("")
        parts.extend(format_study(s) for s in animal)

    parts.append("""TASK:
Write HTML content following the output structure in the system prompt.
Cite every empirical claim with the study id in square brackets, and cite every listed study at least once.
Be honest about evidence limitations.

OUTPUT FORMAT:
Start with a summary paragraph (no heading), then one <h2> per section:

<p>Summary paragraph with key findings [PMID:12345678].</p>

<h2>Human Research</h2>
<p>Content about human studies [NCT:NCT01234567]...</p>

<h2>Animal Research</h2>
<p>Content about animal studies [PMID:11111111]...</p>""")

    return "\n".join(parts)


def build_plain_language_prompt(section_title: str, content_html: str, peptide_name: str, max_chars: int = 3000) -> str:
    text = re.sub(r"<[^>]+>", " ", content_html)
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > max_chars:
        text = text[:max_chars] + "..."

    return f"""Section Title: "{section_title}"
Peptide: {peptide_name}

Technical Content:
{text}

Task: Write a 2-3 sentence plain-language summary explaining what this section means for someone who is not a scientist."""


def build_audit_document(page) -> str:
    """Flatten a PageRecord into the text the auditor reviews."""
    parts = [
        f"PEPTIDE: {page.name}",
        f"SUMMARY: {page.summary_html}",
    ]
    for section in page.sorted_sections():
        parts.append(f'SECTION "{section.title}": {section.content_html}')
    parts.append("DISCLAIMERS: " + " ".join(page.legal_notes))
    return "\n\n".join(parts)
