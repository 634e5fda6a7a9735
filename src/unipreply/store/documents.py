"""
Documents Module - Read access to institution and scholarship collections.
=========================================================================

Defines the abstract document store used by the chat pipeline and two
backends:

- InMemoryDocumentStore: records held in memory (tests, embedding)
- JsonDocumentStore: collections exported to JSON/JSONL files

All reads are coroutines so the request task yields at each store access.
The chat pipeline never writes.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from unipreply.shared.logging import get_logger
from unipreply.shared.schemas import InstitutionRecord, ScholarshipRecord
from unipreply.shared.utils import load_records

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Abstract Base Class
# ─────────────────────────────────────────────────────────────────────────────


class DocumentStore(ABC):
    """
    Abstract read-only document store.

    Implementations must provide:
    - list_institutions(): every institution record (no indexed query)
    - find_scholarships(): indexed equality lookup by institution key
    - list_scholarships(): every scholarship record (fallback scans)
    """

    @property
    @abstractmethod
    def store_name(self) -> str:
        """Get the backend identifier."""
        pass

    @abstractmethod
    async def list_institutions(self) -> list[InstitutionRecord]:
        """Return all institution records."""
        pass

    @abstractmethod
    async def find_scholarships(self, college_id: str) -> list[ScholarshipRecord]:
        """
        Return scholarships whose institution key equals ``college_id``.

        Args:
            college_id: Catalog key

        Returns:
            Matching records (possibly empty)
        """
        pass

    @abstractmethod
    async def list_scholarships(self) -> list[ScholarshipRecord]:
        """Return all scholarship records."""
        pass

    def get_info(self) -> dict[str, Any]:
        """Get store information."""
        return {"store": self.store_name}


# ─────────────────────────────────────────────────────────────────────────────
# Record Parsing
# ─────────────────────────────────────────────────────────────────────────────


def parse_institutions(raw: Iterable[dict[str, Any]]) -> list[InstitutionRecord]:
    """Validate raw institution documents, skipping malformed ones."""
    records = []
    for i, data in enumerate(raw):
        try:
            records.append(InstitutionRecord.model_validate(data))
        except ValidationError as e:
            logger.warning(f"Skipping invalid institution record #{i}: {e.error_count()} errors")
    return records


def parse_scholarships(raw: Iterable[dict[str, Any]]) -> list[ScholarshipRecord]:
    """Validate raw scholarship documents, skipping malformed ones."""
    records = []
    for i, data in enumerate(raw):
        try:
            records.append(ScholarshipRecord.model_validate(data))
        except ValidationError as e:
            logger.warning(f"Skipping invalid scholarship record #{i}: {e.error_count()} errors")
    return records


# ─────────────────────────────────────────────────────────────────────────────
# Backends
# ─────────────────────────────────────────────────────────────────────────────


class InMemoryDocumentStore(DocumentStore):
    """
    Document store over in-memory record lists.

    Example:
        >>> store = InMemoryDocumentStore(institutions=[...], scholarships=[...])
        >>> await store.find_scholarships("yale")
    """

    def __init__(
        self,
        institutions: Optional[Iterable[InstitutionRecord]] = None,
        scholarships: Optional[Iterable[ScholarshipRecord]] = None,
    ):
        self._institutions: list[InstitutionRecord] = []
        self._scholarships: list[ScholarshipRecord] = []
        self._by_college: dict[str, list[ScholarshipRecord]] = {}
        self._set_records(institutions or [], scholarships or [])

    def _set_records(
        self,
        institutions: Iterable[InstitutionRecord],
        scholarships: Iterable[ScholarshipRecord],
    ) -> None:
        self._institutions = list(institutions)
        self._scholarships = list(scholarships)
        index: dict[str, list[ScholarshipRecord]] = defaultdict(list)
        for record in self._scholarships:
            index[record.college_id].append(record)
        self._by_college = dict(index)

    @property
    def store_name(self) -> str:
        return "memory"

    async def list_institutions(self) -> list[InstitutionRecord]:
        return list(self._institutions)

    async def find_scholarships(self, college_id: str) -> list[ScholarshipRecord]:
        return list(self._by_college.get(college_id, []))

    async def list_scholarships(self) -> list[ScholarshipRecord]:
        return list(self._scholarships)

    def get_info(self) -> dict[str, Any]:
        return {
            "store": self.store_name,
            "institutions": len(self._institutions),
            "scholarships": len(self._scholarships),
        }


class JsonDocumentStore(InMemoryDocumentStore):
    """
    Document store backed by exported collection files.

    Files are read on first access (off the event loop) and cached.
    A missing file is treated as an empty collection.
    """

    def __init__(self, institutions_file: Path, scholarships_file: Path):
        super().__init__()
        self.institutions_file = Path(institutions_file)
        self.scholarships_file = Path(scholarships_file)
        self._loaded = False
        self._load_lock: Optional[asyncio.Lock] = None

    @property
    def store_name(self) -> str:
        return "json"

    def _read_collection(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            logger.warning(f"Collection file not found: {path}")
            return []
        return load_records(path)

    def load(self) -> None:
        """Read both collection files synchronously."""
        institutions = parse_institutions(self._read_collection(self.institutions_file))
        scholarships = parse_scholarships(self._read_collection(self.scholarships_file))
        self._set_records(institutions, scholarships)
        self._loaded = True
        logger.info(
            f"Loaded {len(institutions)} institution records and "
            f"{len(scholarships)} scholarships"
        )

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        if self._load_lock is None:
            self._load_lock = asyncio.Lock()
        async with self._load_lock:
            if not self._loaded:
                await asyncio.to_thread(self.load)

    async def list_institutions(self) -> list[InstitutionRecord]:
        await self._ensure_loaded()
        return await super().list_institutions()

    async def find_scholarships(self, college_id: str) -> list[ScholarshipRecord]:
        await self._ensure_loaded()
        return await super().find_scholarships(college_id)

    async def list_scholarships(self) -> list[ScholarshipRecord]:
        await self._ensure_loaded()
        return await super().list_scholarships()

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        info.update(
            {
                "institutions_file": str(self.institutions_file),
                "scholarships_file": str(self.scholarships_file),
                "loaded": self._loaded,
            }
        )
        return info


# ─────────────────────────────────────────────────────────────────────────────
# Factory
# ─────────────────────────────────────────────────────────────────────────────


def get_document_store() -> DocumentStore:
    """Create the configured document store."""
    from unipreply.shared.config import get_settings

    paths = get_settings().resolved_paths
    return JsonDocumentStore(paths.institutions_file, paths.scholarships_file)
