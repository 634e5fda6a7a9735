"""
Pytest Configuration and Fixtures.
===================================

Shared fixtures for all test modules:
- Sample catalog, CDS records and scholarships
- In-memory document store
- Fake chat model with scripted fragments and errors
- Temporary directories
"""

import tempfile
from pathlib import Path
from typing import AsyncIterator, Generator, Optional, Sequence

import pytest

from unipreply.chat.session import ChatModel


# ─────────────────────────────────────────────────────────────────────────────
# Path Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


# ─────────────────────────────────────────────────────────────────────────────
# Catalog Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_catalog_data() -> list[dict]:
    """Catalog entries as stored."""
    return [
        {"value": "yale", "label": "Yale University"},
        {"value": "brown", "label": "Brown University"},
        {"value": "harvard", "label": "Harvard University"},
        {"value": "dartmouth", "label": "Dartmouth College"},
        {
            "value": "upenn",
            "label": "University of Pennsylvania",
            "metadata": {"aliases": ["Penn", "UPenn"]},
        },
        {"value": "george-washington", "label": "George Washington University"},
        {"value": "uw", "label": "University of Washington"},
        {"value": "michigan", "label": "University of Michigan"},
    ]


@pytest.fixture
def sample_catalog(sample_catalog_data: list[dict]):
    """Catalog instance built from the sample entries."""
    from unipreply.store.catalog import catalog_from_records

    return catalog_from_records(sample_catalog_data)


# ─────────────────────────────────────────────────────────────────────────────
# Record Fixtures
# ─────────────────────────────────────────────────────────────────────────────


def make_institution_data(
    key: str,
    name: str,
    applied: Optional[int] = 1000,
    admitted: Optional[int] = 100,
    tuition: str = "$60,000",
) -> dict:
    """Build a CDS document in the stored shape."""
    applications = {"Total_enrolled": 50}
    if applied is not None:
        applications["Total_applied"] = applied
    if admitted is not None:
        applications["Total_admitted"] = admitted

    return {
        "id": f"{key}-2024-2025",
        "collegeId": key,
        "Institution": name,
        "Common_Data_Set": "2024-2025",
        "A_General_Information": {
            "A1_Address_Information": {
                "City_State_Zip_Country": "Somewhere, USA",
                "WWW_Home_Page_Address": f"https://www.{key}.edu",
            }
        },
        "B_Enrollment_and_Persistence": {
            "B1_Institutional_Enrollment_By_Gender": {
                "Total_all_Undergraduate": 6000,
                "Total_all_Graduate_and_Professional": 4000,
            },
            "B22_Retention_Rate": "98%",
        },
        "C_First_Time_First_Year_Admission": {
            "C1_Applications": applications,
            "C9_First_Time_First_Year_Profile": {
                "SAT_Scores_25th_50th_75th_Percentiles": {"Composite": [1480, 1530, 1560]},
                "ACT_Scores_25th_50th_75th_Percentiles": {"Composite": [33, 34, 35]},
                "Percent_Submitting_SAT": "50%",
            },
        },
        "G_Annual_Expenses": {
            "G1_Undergraduate_Full_Time_Costs_2024_2025": {
                "Tuition": {"Private_Institutions": tuition},
                "Food_and_Housing_on_campus": "$18,000",
            }
        },
        "H_Financial_Aid": {
            "H2_Enrolled_Students_Awarded_Aid": {
                "First_Time_Full_Time_Freshmen": {
                    "Average_financial_aid_package": "$70,000",
                    "Average_need_based_scholarship_grant": "$65,000",
                }
            }
        },
        "I_Instructional_Faculty_and_Class_Size": {"I2_Student_to_Faculty_Ratio": "6:1"},
    }


@pytest.fixture
def yale_record():
    from unipreply.shared.schemas import InstitutionRecord

    return InstitutionRecord.model_validate(
        make_institution_data("yale", "Yale University", tuition="$67,250")
    )


@pytest.fixture
def brown_record():
    from unipreply.shared.schemas import InstitutionRecord

    return InstitutionRecord.model_validate(
        make_institution_data("brown", "Brown University", applied=2000, admitted=150, tuition="$68,612")
    )


@pytest.fixture
def sample_scholarships():
    """Scholarships: two indexed under yale, one only named (no key)."""
    from unipreply.shared.schemas import ScholarshipRecord

    return [
        ScholarshipRecord.model_validate(
            {
                "id": "yale-1",
                "collegeId": "yale",
                "collegeName": "Yale University",
                "name": "Yale First-Year Grant",
                "amount": "$10,000",
                "deadline": "January 2",
                "eligibility": ["First-year applicants", "Demonstrated need"],
                "scholarshipType": "Need-based",
                "studentType": "first-year",
                "sourceUrl": "https://finaid.yale.edu",
                "rawText": "Line one.\nLine two.",
            }
        ),
        ScholarshipRecord.model_validate(
            {
                "id": "yale-2",
                "collegeId": "yale",
                "collegeName": "Yale University",
                "name": "Yale Transfer Award",
                "studentType": "transfer",
            }
        ),
        ScholarshipRecord.model_validate(
            {
                "id": "brown-1",
                "collegeName": "Brown University",
                "name": "The Brown Promise",
                "amount": "Loans replaced with grants",
            }
        ),
    ]


@pytest.fixture
def memory_store(yale_record, brown_record, sample_scholarships):
    """In-memory store holding Yale and Brown with scholarships."""
    from unipreply.store.documents import InMemoryDocumentStore

    return InMemoryDocumentStore(
        institutions=[yale_record, brown_record],
        scholarships=sample_scholarships,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Fake Chat Model
# ─────────────────────────────────────────────────────────────────────────────


class FakeChatModel(ChatModel):
    """
    Scripted chat model.

    Yields ``fragments`` in order. ``open_error`` is raised when the stream
    is opened; ``error`` is raised just before fragment ``fail_at``.
    """

    def __init__(
        self,
        fragments: Sequence[str] = (),
        open_error: Optional[Exception] = None,
        error: Optional[Exception] = None,
        fail_at: Optional[int] = None,
    ):
        self.fragments = list(fragments)
        self.open_error = open_error
        self.error = error
        self.fail_at = fail_at
        self.calls: list[tuple[list[dict], str]] = []

    @property
    def model_name(self) -> str:
        return "fake-model"

    async def open_stream(self, history: list[dict], message: str) -> AsyncIterator[str]:
        self.calls.append((history, message))
        if self.open_error is not None:
            raise self.open_error
        return self._fragments()

    async def _fragments(self) -> AsyncIterator[str]:
        for i, fragment in enumerate(self.fragments):
            if self.fail_at == i:
                raise self.error
            yield fragment
        if self.fail_at is not None and self.fail_at >= len(self.fragments):
            raise self.error


@pytest.fixture
def fake_model_factory():
    """Return a function creating FakeChatModel instances."""
    return FakeChatModel


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "requires_api: marks tests that require API keys"
    )


@pytest.fixture(autouse=True)
def reset_settings():
    """Reload settings between tests so environment patches do not leak."""
    from unipreply.shared.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
