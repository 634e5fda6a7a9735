"""
Prompts Module - System instruction composition for grounded chat.
==================================================================

Builds the single system instruction that seeds each model session:

1. Persona and tone
2. Formatting constraints (plain text, dash bullets, comparison table layout)
3. "Currently viewing" page clause
4. One CDS digest block per institution with data, plus a disclaimer for
   institutions without data
5. Scholarship blocks and the scholarship card layout the renderer parses

Composition is append-only and deterministic for a given input.
"""

from typing import Any, Optional, Sequence

from unipreply.chat.fetcher import FetchResult, InstitutionLookup
from unipreply.shared.logging import get_logger
from unipreply.shared.schemas import ChatContext, InstitutionRecord, ScholarshipRecord
from unipreply.shared.utils import acceptance_rate

logger = get_logger(__name__)

NOT_AVAILABLE = "N/A"


# ─────────────────────────────────────────────────────────────────────────────
# System Prompts
# ─────────────────────────────────────────────────────────────────────────────


SYSTEM_PROMPT_BASE = """You are {assistant_name}, a helpful AI assistant for college admissions. You help students and parents navigate the college application process, understand admissions data, compare schools, and make informed decisions.

Be concise, friendly, and informative. When discussing specific colleges, use the Common Data Set (CDS) data provided below. If data is not available for a school, acknowledge that."""


FORMATTING_RULES = """CRITICAL FORMATTING RULES - YOU MUST FOLLOW THESE:
1. NEVER use asterisks (*) for any purpose - no bold, no italics, no bullet points with asterisks
2. NEVER use underscores for emphasis and NEVER use markdown headings
3. For bullet points, use dashes (-) only
4. Write school names in plain text, not bold: "Yale University" not "**Yale University**"
5. Keep responses clean and simple with plain text only"""


COMPARISON_TABLE_RULES = """COMPARISON FORMAT:
You are comparing multiple schools. Present the key numbers as a pipe-delimited table with one row per metric and one column per school, exactly like this:

| Metric | {first} | {second} |
|---|---|---|
| Acceptance Rate | 4.6% | 5.2% |
| Tuition | $67,250 | $68,612 |
| SAT Composite (25th/50th/75th) | 1480/1540/1560 | 1500/1530/1560 |

Put a short plain-text summary before or after the table. Use N/A for values not in the data."""


NO_DATA_DISCLAIMER = (
    "Note: No CDS data is currently available in the database for {names}. "
    "You can provide general information but note that specific statistics may not be current."
)


SCHOLARSHIP_FORMAT_RULES = """SCHOLARSHIP FORMAT:
When you list scholarships, format EACH one as its own block between lines of three dashes, exactly like this:

---
SCHOLARSHIP: Name of the scholarship
Amount: $10,000 per year
Deadline: January 15
Eligibility: First-year applicants, demonstrated financial need
Type: Need-based
More Info: https://example.edu/scholarship
---

Use only scholarships from the SCHOLARSHIP INFORMATION above. Omit a line when the value is unknown. Do not invent scholarships, amounts, or deadlines."""


NO_SCHOLARSHIPS_SENTENCE = "No scholarships found in our database for {name}."


# ─────────────────────────────────────────────────────────────────────────────
# CDS Digest Formatting
# ─────────────────────────────────────────────────────────────────────────────


def _fmt(value: Any) -> str:
    if value is None or value == "":
        return NOT_AVAILABLE
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _join_percentiles(values: Optional[Sequence[Any]]) -> Optional[str]:
    if not values:
        return None
    return "/".join(_fmt(v) for v in values)


def format_cds_digest(record: InstitutionRecord) -> str:
    """
    Format an institution record as a human-readable digest.

    Sections absent from the record are skipped entirely. The acceptance
    rate appears only when both applied and admitted counts are present.
    """
    lines: list[str] = []

    if record.general and record.general.address:
        address = record.general.address
        lines.append(f"Location: {_fmt(address.city_state_zip_country)}")
        lines.append(f"Website: {_fmt(address.website)}")

    enrollment = record.enrollment
    if enrollment and enrollment.by_gender:
        lines.append(f"Total Undergraduates: {_fmt(enrollment.by_gender.total_undergraduate)}")
        lines.append(f"Total Graduate: {_fmt(enrollment.by_gender.total_graduate)}")
    if enrollment and enrollment.retention_rate:
        lines.append(f"Retention Rate: {_fmt(enrollment.retention_rate)}")

    apps = record.applications
    if apps:
        lines.append(f"Applications: {_fmt(apps.total_applied)}")
        lines.append(f"Admitted: {_fmt(apps.total_admitted)}")
        rate = acceptance_rate(apps.total_applied, apps.total_admitted)
        if rate:
            lines.append(f"Acceptance Rate: {rate}")
        lines.append(f"Enrolled: {_fmt(apps.total_enrolled)}")

    profile = record.profile
    if profile:
        sat = _join_percentiles(profile.sat.composite if profile.sat else None)
        if sat:
            lines.append(f"SAT Composite (25th/50th/75th): {sat}")
        act = _join_percentiles(profile.act.composite if profile.act else None)
        if act:
            lines.append(f"ACT Composite (25th/50th/75th): {act}")
        lines.append(f"% Submitting SAT: {_fmt(profile.percent_submitting_sat)}")
        lines.append(f"% Submitting ACT: {_fmt(profile.percent_submitting_act)}")

    costs = record.costs
    if costs:
        tuition = costs.tuition.effective if costs.tuition else None
        lines.append(f"Tuition: {_fmt(tuition)}")
        lines.append(f"Room & Board: {_fmt(costs.food_and_housing)}")

    aid = record.freshmen_aid
    if aid:
        lines.append(f"Avg Financial Aid Package: {_fmt(aid.average_aid_package)}")
        lines.append(f"Avg Need-Based Grant: {_fmt(aid.average_need_based_grant)}")

    if record.faculty and record.faculty.student_faculty_ratio:
        lines.append(f"Student-Faculty Ratio: {_fmt(record.faculty.student_faculty_ratio)}")

    return "\n".join(lines)


def comparison_rows(records: dict[str, InstitutionRecord]) -> list[tuple[str, list[str]]]:
    """
    Side-by-side comparison metrics.

    Args:
        records: Display name → record, in column order

    Returns:
        List of (metric label, one value per record)
    """
    def applications(r: InstitutionRecord) -> Any:
        return r.applications.total_applied if r.applications else None

    def rate(r: InstitutionRecord) -> Any:
        a = r.applications
        return acceptance_rate(a.total_applied, a.total_admitted) if a else None

    def sat(r: InstitutionRecord) -> Any:
        p = r.profile
        return _join_percentiles(p.sat.composite) if p and p.sat else None

    def act(r: InstitutionRecord) -> Any:
        p = r.profile
        return _join_percentiles(p.act.composite) if p and p.act else None

    def tuition(r: InstitutionRecord) -> Any:
        c = r.costs
        return c.tuition.effective if c and c.tuition else None

    metrics = [
        ("Acceptance Rate", rate),
        ("Applications", applications),
        ("SAT Composite (25th/50th/75th)", sat),
        ("ACT Composite (25th/50th/75th)", act),
        ("% Submitting SAT", lambda r: r.profile.percent_submitting_sat if r.profile else None),
        ("Tuition", tuition),
        ("Room & Board", lambda r: r.costs.food_and_housing if r.costs else None),
        (
            "Avg Financial Aid Package",
            lambda r: r.freshmen_aid.average_aid_package if r.freshmen_aid else None,
        ),
        (
            "Avg Need-Based Grant",
            lambda r: r.freshmen_aid.average_need_based_grant if r.freshmen_aid else None,
        ),
        (
            "Student-Faculty Ratio",
            lambda r: r.faculty.student_faculty_ratio if r.faculty else None,
        ),
        (
            "Undergraduates",
            lambda r: r.enrollment.by_gender.total_undergraduate
            if r.enrollment and r.enrollment.by_gender
            else None,
        ),
        ("Retention Rate", lambda r: r.enrollment.retention_rate if r.enrollment else None),
    ]
    return [(label, [_fmt(getter(r)) for r in records.values()]) for label, getter in metrics]


# ─────────────────────────────────────────────────────────────────────────────
# Scholarship Formatting
# ─────────────────────────────────────────────────────────────────────────────


def format_scholarship(scholarship: ScholarshipRecord, snippet_chars: int = 300) -> str:
    """Format one scholarship for the prompt context."""
    lines = [f"Scholarship: {scholarship.name}"]
    if scholarship.amount:
        lines.append(f"Amount: {scholarship.amount}")
    if scholarship.deadline:
        lines.append(f"Deadline: {scholarship.deadline}")
    eligibility = scholarship.eligibility_text()
    if eligibility:
        lines.append(f"Eligibility: {eligibility}")
    if scholarship.category:
        lines.append(f"Type: {scholarship.category}")
    lines.append(f"For: {scholarship.student_type.value}")
    if scholarship.source_url:
        lines.append(f"More Info: {scholarship.source_url}")
    if scholarship.raw_text:
        snippet = " ".join(scholarship.raw_text[:snippet_chars].split())
        lines.append(f"Details: {snippet}")
    return "\n".join(lines)


# ─────────────────────────────────────────────────────────────────────────────
# Prompt Composer
# ─────────────────────────────────────────────────────────────────────────────


class PromptComposer:
    """
    Composes the system instruction for a chat session.

    Example:
        >>> composer = PromptComposer()
        >>> system_prompt = composer.compose(fetch_result, context)
    """

    def __init__(
        self,
        assistant_name: Optional[str] = None,
        snippet_chars: Optional[int] = None,
    ):
        """
        Initialize the composer.

        Args:
            assistant_name: Persona name (default from config)
            snippet_chars: Raw-text snippet length for scholarships (default from config)
        """
        from unipreply.shared.config import get_settings

        settings = get_settings()
        self.assistant_name = assistant_name or settings.persona.assistant_name
        self.snippet_chars = snippet_chars or settings.fetcher.raw_text_snippet_chars

    def compose(
        self,
        fetched: FetchResult,
        context: Optional[ChatContext] = None,
    ) -> str:
        """
        Build the system instruction.

        Args:
            fetched: Records fetched for the message's institutions
            context: Page the user is viewing, if any

        Returns:
            System instruction string
        """
        parts = [
            SYSTEM_PROMPT_BASE.format(assistant_name=self.assistant_name),
            FORMATTING_RULES,
        ]

        if len(fetched.lookups) >= 2:
            names = [l.display_name for l in fetched.lookups]
            parts.append(COMPARISON_TABLE_RULES.format(first=names[0], second=names[1]))

        if context and context.college_name:
            page = context.page_type or "page"
            parts.append(f"The user is currently viewing the {page} for {context.college_name}.")

        cds_section = self._cds_section(fetched.lookups)
        if cds_section:
            parts.append(cds_section)

        if fetched.missing:
            parts.append(NO_DATA_DISCLAIMER.format(names=", ".join(fetched.missing)))

        if fetched.scholarship_intent:
            scholarship_section = self._scholarship_section(fetched.lookups)
            if scholarship_section:
                parts.append(scholarship_section)
                if any(l.scholarships for l in fetched.lookups):
                    parts.append(SCHOLARSHIP_FORMAT_RULES)

        prompt = "\n\n".join(parts)
        logger.info(
            f"Composed system prompt: {len(prompt)} chars, "
            f"{len(fetched.records)} CDS blocks, {len(fetched.missing)} without data"
        )
        return prompt

    def _cds_section(self, lookups: Sequence[InstitutionLookup]) -> str:
        blocks = []
        for lookup in lookups:
            if lookup.record is None:
                continue
            record = lookup.record
            header = f"--- {lookup.display_name} ({record.common_data_set or 'CDS'}) ---"
            blocks.append(f"{header}\n{format_cds_digest(record)}")

        if not blocks:
            return ""
        body = "\n\n".join(blocks)
        return f"=== COMMON DATA SET INFORMATION ===\n{body}\n=== END CDS DATA ==="

    def _scholarship_section(self, lookups: Sequence[InstitutionLookup]) -> str:
        blocks = []
        for lookup in lookups:
            if lookup.scholarships is None:
                continue
            header = f"--- Scholarships at {lookup.display_name} ---"
            if lookup.scholarships:
                entries = "\n\n".join(
                    format_scholarship(s, self.snippet_chars) for s in lookup.scholarships
                )
            else:
                entries = NO_SCHOLARSHIPS_SENTENCE.format(name=lookup.display_name)
            blocks.append(f"{header}\n{entries}")

        if not blocks:
            return ""
        body = "\n\n".join(blocks)
        return f"=== SCHOLARSHIP INFORMATION ===\n{body}\n=== END SCHOLARSHIP DATA ==="


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────


def compose_system_prompt(
    fetched: FetchResult,
    context: Optional[ChatContext] = None,
) -> str:
    """
    Build the system instruction.

    Convenience function.
    """
    return PromptComposer().compose(fetched, context)
