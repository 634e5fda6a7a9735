"""
Schemas Module - Pydantic data models for the application.
==========================================================

Defines all data contracts used across the application:
- Common Data Set institution records (typed, optional-field tree)
- Scholarship records and catalog entries
- Chat request / conversation turn models
- Render blocks and stream events
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from unipreply.shared.logging import get_logger

logger = get_logger(__name__)

# CDS values arrive as numbers or pre-formatted strings ("$64,700", "6:1")
Scalar = Union[int, float, str]


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class Role(str, Enum):
    """Conversation turn author."""

    USER = "user"
    ASSISTANT = "assistant"


class StudentType(str, Enum):
    """Scholarship audience."""

    FIRST_YEAR = "first-year"
    TRANSFER = "transfer"
    BOTH = "both"


# ─────────────────────────────────────────────────────────────────────────────
# Common Data Set Sections
# ─────────────────────────────────────────────────────────────────────────────


class CDSSection(BaseModel):
    """Base for CDS sections: stored field names are aliases, unknown fields ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class AddressInformation(CDSSection):
    name: Optional[str] = Field(default=None, alias="Name_of_College_University")
    city_state_zip_country: Optional[str] = Field(default=None, alias="City_State_Zip_Country")
    website: Optional[str] = Field(default=None, alias="WWW_Home_Page_Address")


class GeneralInformation(CDSSection):
    address: Optional[AddressInformation] = Field(default=None, alias="A1_Address_Information")


class EnrollmentByGender(CDSSection):
    total_undergraduate: Optional[Scalar] = Field(default=None, alias="Total_all_Undergraduate")
    total_graduate: Optional[Scalar] = Field(
        default=None, alias="Total_all_Graduate_and_Professional"
    )
    grand_total: Optional[Scalar] = Field(default=None, alias="Grand_Total_All_Students")


class EnrollmentAndPersistence(CDSSection):
    by_gender: Optional[EnrollmentByGender] = Field(
        default=None, alias="B1_Institutional_Enrollment_By_Gender"
    )
    retention_rate: Optional[Scalar] = Field(default=None, alias="B22_Retention_Rate")


class Applications(CDSSection):
    total_applied: Optional[Scalar] = Field(default=None, alias="Total_applied")
    total_admitted: Optional[Scalar] = Field(default=None, alias="Total_admitted")
    total_enrolled: Optional[Scalar] = Field(default=None, alias="Total_enrolled")


class ScorePercentiles(CDSSection):
    composite: Optional[list[Scalar]] = Field(default=None, alias="Composite")


class FirstYearProfile(CDSSection):
    sat: Optional[ScorePercentiles] = Field(
        default=None, alias="SAT_Scores_25th_50th_75th_Percentiles"
    )
    act: Optional[ScorePercentiles] = Field(
        default=None, alias="ACT_Scores_25th_50th_75th_Percentiles"
    )
    percent_submitting_sat: Optional[Scalar] = Field(default=None, alias="Percent_Submitting_SAT")
    percent_submitting_act: Optional[Scalar] = Field(default=None, alias="Percent_Submitting_ACT")


class FirstYearAdmission(CDSSection):
    applications: Optional[Applications] = Field(default=None, alias="C1_Applications")
    profile: Optional[FirstYearProfile] = Field(
        default=None, alias="C9_First_Time_First_Year_Profile"
    )


class Tuition(CDSSection):
    private_institutions: Optional[Scalar] = Field(default=None, alias="Private_Institutions")
    in_state: Optional[Scalar] = Field(default=None, alias="In_State")
    out_of_state: Optional[Scalar] = Field(default=None, alias="Out_of_State")

    @property
    def effective(self) -> Optional[Scalar]:
        """Private tuition when reported, else in-state, else out-of-state."""
        return self.private_institutions or self.in_state or self.out_of_state


class UndergraduateCosts(CDSSection):
    tuition: Optional[Tuition] = Field(default=None, alias="Tuition")
    food_and_housing: Optional[Scalar] = Field(default=None, alias="Food_and_Housing_on_campus")


UNDERGRADUATE_COSTS_PREFIX = "G1_Undergraduate_Full_Time_Costs"


class AnnualExpenses(BaseModel):
    """
    G section. The G1 key carries the academic year
    (e.g. ``G1_Undergraduate_Full_Time_Costs_2025_2026``), so it is kept
    as an extra field and located by prefix.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    def undergraduate_costs(self) -> Optional[UndergraduateCosts]:
        """Get the most recent undergraduate cost table, if any."""
        extras = self.model_extra or {}
        keys = sorted(k for k in extras if k.startswith(UNDERGRADUATE_COSTS_PREFIX))
        if not keys:
            return None
        value = extras[keys[-1]]
        if not isinstance(value, dict):
            return None
        return UndergraduateCosts.model_validate(value)


class FreshmenAid(CDSSection):
    average_aid_package: Optional[Scalar] = Field(
        default=None, alias="Average_financial_aid_package"
    )
    average_need_based_grant: Optional[Scalar] = Field(
        default=None, alias="Average_need_based_scholarship_grant"
    )


class AwardedAid(CDSSection):
    first_time_full_time: Optional[FreshmenAid] = Field(
        default=None, alias="First_Time_Full_Time_Freshmen"
    )


class FinancialAid(CDSSection):
    awarded_aid: Optional[AwardedAid] = Field(
        default=None, alias="H2_Enrolled_Students_Awarded_Aid"
    )


class FacultyAndClassSize(CDSSection):
    student_faculty_ratio: Optional[Scalar] = Field(
        default=None, alias="I2_Student_to_Faculty_Ratio"
    )


# ─────────────────────────────────────────────────────────────────────────────
# Institution Record
# ─────────────────────────────────────────────────────────────────────────────


class InstitutionRecord(BaseModel):
    """
    A Common Data Set digest for one institution.

    Read-only from the chat pipeline's perspective. Every section is optional;
    an absent section means "not reported", never zero. Unrecognized
    top-level sections are logged and dropped.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str = Field(default="", description="Document identifier")
    key: Optional[str] = Field(default=None, alias="collegeId", description="Catalog key")
    institution: Optional[str] = Field(default=None, alias="Institution")
    common_data_set: Optional[str] = Field(default=None, alias="Common_Data_Set")

    general: Optional[GeneralInformation] = Field(default=None, alias="A_General_Information")
    enrollment: Optional[EnrollmentAndPersistence] = Field(
        default=None, alias="B_Enrollment_and_Persistence"
    )
    admissions: Optional[FirstYearAdmission] = Field(
        default=None, alias="C_First_Time_First_Year_Admission"
    )
    expenses: Optional[AnnualExpenses] = Field(default=None, alias="G_Annual_Expenses")
    financial_aid: Optional[FinancialAid] = Field(default=None, alias="H_Financial_Aid")
    faculty: Optional[FacultyAndClassSize] = Field(
        default=None, alias="I_Instructional_Faculty_and_Class_Size"
    )

    @model_validator(mode="before")
    @classmethod
    def _log_unknown_sections(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set()
        for name, field in cls.model_fields.items():
            known.add(name)
            if field.alias:
                known.add(field.alias)
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            logger.warning(
                f"Ignoring unrecognized CDS sections for "
                f"{data.get('Institution') or data.get('id') or '?'}: {unknown}"
            )
            data = {k: v for k, v in data.items() if k in known}
        return data

    @property
    def display_name(self) -> str:
        """Institution name as reported, falling back to the A1 address block."""
        if self.institution:
            return self.institution
        if self.general and self.general.address and self.general.address.name:
            return self.general.address.name
        return ""

    @property
    def applications(self) -> Optional[Applications]:
        return self.admissions.applications if self.admissions else None

    @property
    def profile(self) -> Optional[FirstYearProfile]:
        return self.admissions.profile if self.admissions else None

    @property
    def costs(self) -> Optional[UndergraduateCosts]:
        return self.expenses.undergraduate_costs() if self.expenses else None

    @property
    def freshmen_aid(self) -> Optional[FreshmenAid]:
        if self.financial_aid and self.financial_aid.awarded_aid:
            return self.financial_aid.awarded_aid.first_time_full_time
        return None


# ─────────────────────────────────────────────────────────────────────────────
# Scholarships and Catalog
# ─────────────────────────────────────────────────────────────────────────────


class ScholarshipRecord(BaseModel):
    """A stored scholarship, looked up by its institution key."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str = Field(default="", description="Document identifier")
    name: str = Field(..., description="Display name")
    raw_text: str = Field(default="", alias="rawText", description="Source text")
    amount: Optional[str] = Field(default=None)
    deadline: Optional[str] = Field(default=None)
    eligibility: Optional[Union[list[str], str]] = Field(default=None)
    source_url: Optional[str] = Field(default=None, alias="sourceUrl")
    student_type: StudentType = Field(default=StudentType.BOTH, alias="studentType")
    category: Optional[str] = Field(default=None, alias="scholarshipType")
    college_id: str = Field(default="", alias="collegeId", description="Catalog key")
    college_name: Optional[str] = Field(
        default=None, alias="collegeName", description="Denormalized institution name"
    )

    def eligibility_text(self) -> Optional[str]:
        """Eligibility joined with commas when stored as a list."""
        if not self.eligibility:
            return None
        if isinstance(self.eligibility, list):
            return ", ".join(item for item in self.eligibility if item)
        return self.eligibility

    def matches_audience(self, student_type: Optional[StudentType]) -> bool:
        """True when the scholarship is open to the given audience (or no filter)."""
        if student_type is None or student_type == StudentType.BOTH:
            return True
        return self.student_type in (student_type, StudentType.BOTH)


class CatalogEntry(BaseModel):
    """A known institution: canonical key plus display label."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    key: str = Field(..., alias="value", description="Normalized unique identifier")
    label: str = Field(..., description="Display label")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def aliases(self) -> list[str]:
        """Alternate names from ``metadata["aliases"]``."""
        aliases = self.metadata.get("aliases") or []
        return [a for a in aliases if isinstance(a, str)]


# ─────────────────────────────────────────────────────────────────────────────
# Chat Request Models
# ─────────────────────────────────────────────────────────────────────────────


class ConversationTurn(BaseModel):
    """One message of the dialogue history."""

    role: Role
    content: str = ""


class ChatContext(BaseModel):
    """Page the user is viewing when chatting."""

    model_config = ConfigDict(populate_by_name=True)

    college_name: Optional[str] = Field(default=None, alias="collegeName")
    page_type: Optional[str] = Field(default=None, alias="pageType")


class ChatRequest(BaseModel):
    """Inbound chat payload. Emptiness of ``messages`` is checked by the endpoint."""

    messages: Optional[list[ConversationTurn]] = None
    context: Optional[ChatContext] = None


# ─────────────────────────────────────────────────────────────────────────────
# Render Blocks
# ─────────────────────────────────────────────────────────────────────────────


class ProseBlock(BaseModel):
    """Plain text. ``preformatted`` marks a table that failed to parse."""

    kind: Literal["prose"] = "prose"
    text: str
    preformatted: bool = False


class TableBlock(BaseModel):
    kind: Literal["table"] = "table"
    headers: list[str]
    rows: list[list[str]]


class ScholarshipCardBlock(BaseModel):
    kind: Literal["scholarship"] = "scholarship"
    name: Optional[str] = None
    amount: Optional[str] = None
    deadline: Optional[str] = None
    eligibility: Optional[str] = None
    type: Optional[str] = None
    audience: Optional[str] = None
    link: Optional[str] = None
    details: Optional[str] = None

    def fields(self) -> list[tuple[str, str]]:
        """Labelled, non-empty card fields in display order."""
        labelled = [
            ("Amount", self.amount),
            ("Deadline", self.deadline),
            ("Eligibility", self.eligibility),
            ("Type", self.type),
            ("For", self.audience),
            ("Details", self.details),
        ]
        return [(label, value) for label, value in labelled if value]


RenderBlock = Annotated[
    Union[ProseBlock, TableBlock, ScholarshipCardBlock],
    Field(discriminator="kind"),
]


# ─────────────────────────────────────────────────────────────────────────────
# Stream Events
# ─────────────────────────────────────────────────────────────────────────────


class StreamEvent(BaseModel):
    """One server-sent event: a fragment, the terminal done marker, or an error."""

    content: Optional[str] = None
    done: Optional[bool] = None
    error: Optional[str] = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    def to_sse(self) -> str:
        """Encode as a ``data: <json>`` line followed by a blank line."""
        return f"data: {self.to_json()}\n\n"

    @property
    def is_terminal(self) -> bool:
        return bool(self.done) or self.error is not None
