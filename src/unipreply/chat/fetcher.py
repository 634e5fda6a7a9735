"""
Fetcher Module - Retrieve CDS and scholarship records for resolved institutions.
===============================================================================

For each resolved candidate:
- Institution record: linear scan of all records, matched by catalog key,
  then by exact label, then by a name the catalog resolves to the same entry
- Scholarships (only when the message asks about aid): indexed lookup by
  catalog key, falling back to a scan on the denormalized college name

Missing data is an explicit absence, never an error. Store failures are
logged and degrade to "no data".
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from unipreply.chat.resolver import ResolvedCandidate
from unipreply.shared.logging import get_logger
from unipreply.shared.schemas import (
    CatalogEntry,
    InstitutionRecord,
    ScholarshipRecord,
    StudentType,
)
from unipreply.store.catalog import Catalog
from unipreply.store.documents import DocumentStore

logger = get_logger(__name__)

INSTITUTION_KINDS = ("university", "college", "institute")


def _kinds_conflict(first: str, second: str) -> bool:
    """True when both names state an institution kind and the kinds differ."""
    a = {k for k in INSTITUTION_KINDS if re.search(rf"\b{k}\b", first)}
    b = {k for k in INSTITUTION_KINDS if re.search(rf"\b{k}\b", second)}
    return bool(a) and bool(b) and not (a & b)


# ─────────────────────────────────────────────────────────────────────────────
# Data Classes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class InstitutionLookup:
    """Fetch outcome for one candidate name."""

    candidate: str
    entry: Optional[CatalogEntry] = None
    record: Optional[InstitutionRecord] = None
    scholarships: Optional[list[ScholarshipRecord]] = None  # None = not requested

    @property
    def display_name(self) -> str:
        if self.record and self.record.display_name:
            return self.record.display_name
        if self.entry:
            return self.entry.label
        return self.candidate

    @property
    def has_record(self) -> bool:
        return self.record is not None


@dataclass
class FetchResult:
    """All lookups for one chat request."""

    lookups: list[InstitutionLookup] = field(default_factory=list)
    scholarship_intent: bool = False

    @property
    def records(self) -> dict[str, InstitutionRecord]:
        """Display name → institution record, for institutions with data."""
        return {l.display_name: l.record for l in self.lookups if l.record is not None}

    @property
    def scholarships(self) -> dict[str, list[ScholarshipRecord]]:
        """Display name → scholarships, for institutions where they were requested."""
        return {
            l.display_name: l.scholarships
            for l in self.lookups
            if l.scholarships is not None
        }

    @property
    def missing(self) -> list[str]:
        """Candidate names with no institution record."""
        return [l.candidate for l in self.lookups if l.record is None]


# ─────────────────────────────────────────────────────────────────────────────
# Intent Detection
# ─────────────────────────────────────────────────────────────────────────────


def detect_scholarship_intent(message: str, keywords: Optional[Sequence[str]] = None) -> bool:
    """
    Check whether a message asks about scholarships or financial aid.

    Keywords match case-insensitively at a word start, so "aid" matches
    "aid" but not "said", and "scholarship" matches "scholarships".
    """
    if keywords is None:
        from unipreply.shared.config import get_settings

        keywords = get_settings().fetcher.scholarship_keywords

    text = message.lower()
    return any(re.search(rf"(?<!\w){re.escape(kw.lower())}", text) for kw in keywords)


# ─────────────────────────────────────────────────────────────────────────────
# Fetcher
# ─────────────────────────────────────────────────────────────────────────────


class RecordFetcher:
    """
    Fetches institution and scholarship records from the document store.

    Example:
        >>> fetcher = RecordFetcher(store, catalog)
        >>> result = await fetcher.fetch(resolved, scholarship_intent=True)
        >>> result.records.keys()
    """

    def __init__(
        self,
        store: DocumentStore,
        catalog: Optional[Catalog] = None,
    ):
        self.store = store
        self.catalog = catalog

    def _names_entry(self, name: str, entry: CatalogEntry) -> bool:
        """
        Whether a stored institution name refers to ``entry``.

        The label or an alias must match exactly, or the catalog must
        resolve the name back to this same entry. Names of different kinds
        ("Boston University" vs "Boston College") never match.
        """
        text = name.strip().lower()
        if not text:
            return False
        exact = {entry.label.strip().lower(), *(a.lower() for a in entry.aliases)}
        if text in exact:
            return True
        if self.catalog is None or _kinds_conflict(text, entry.label.lower()):
            return False
        resolved = self.catalog.resolve(name)
        return resolved is not None and resolved.key == entry.key

    async def fetch_institution(self, entry: CatalogEntry) -> Optional[InstitutionRecord]:
        """
        Find the CDS record for a catalog entry.

        Prefers a catalog key match, then an exact label or alias match,
        then a name the catalog resolves back to the same entry. Anything
        else is "no data".
        """
        records = await self.store.list_institutions()

        for record in records:
            if record.key and record.key == entry.key:
                return record

        exact = entry.label.strip().lower()
        named = [r for r in records if r.display_name]
        for record in named:
            if record.display_name.strip().lower() == exact:
                return record
        for record in named:
            if self._names_entry(record.display_name, entry):
                logger.debug(f"Matched record '{record.display_name}' to {entry.key} by name")
                return record
        return None

    async def fetch_scholarships(
        self,
        entry: CatalogEntry,
        student_type: Optional[StudentType] = None,
    ) -> list[ScholarshipRecord]:
        """
        Find scholarships for a catalog entry.

        Args:
            entry: Resolved catalog entry
            student_type: Optional audience filter ("both" always passes)

        Returns:
            Scholarships in store order (possibly empty)
        """
        found = await self.store.find_scholarships(entry.key)
        if not found:
            logger.debug(f"No scholarships indexed under '{entry.key}'; scanning by name")
            found = [
                s
                for s in await self.store.list_scholarships()
                if s.college_name and self._names_entry(s.college_name, entry)
            ]
        return [s for s in found if s.matches_audience(student_type)]

    async def fetch(
        self,
        resolved: Sequence[ResolvedCandidate],
        scholarship_intent: bool = False,
    ) -> FetchResult:
        """
        Fetch records for every resolved candidate, in order.

        Args:
            resolved: Candidates with their catalog entries
            scholarship_intent: Whether to fetch scholarships as well

        Returns:
            FetchResult with one lookup per candidate
        """
        result = FetchResult(scholarship_intent=scholarship_intent)

        for candidate in resolved:
            lookup = InstitutionLookup(candidate=candidate.name, entry=candidate.entry)
            result.lookups.append(lookup)

            if candidate.entry is None:
                logger.info(f"No catalog entry for '{candidate.name}'; no data available")
                continue

            try:
                lookup.record = await self.fetch_institution(candidate.entry)
            except Exception as e:
                logger.error(f"Institution fetch failed for {candidate.entry.key}: {e}")

            if lookup.record is None:
                logger.info(f"No CDS record stored for {candidate.entry.label}")

            if scholarship_intent:
                try:
                    lookup.scholarships = await self.fetch_scholarships(candidate.entry)
                except Exception as e:
                    logger.error(f"Scholarship fetch failed for {candidate.entry.key}: {e}")
                    lookup.scholarships = []

        logger.info(
            f"Fetched {len(result.records)} CDS records for {len(result.lookups)} candidates"
            + (f", scholarships for {len(result.scholarships)}" if scholarship_intent else "")
        )
        return result
