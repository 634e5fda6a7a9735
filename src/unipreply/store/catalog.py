"""
Catalog Module - Static list of known institutions.
===================================================

The catalog maps free-text institution mentions to canonical keys. It is
loaded once at startup and passed by reference to the resolver and fetcher;
it is never mutated afterwards.

Resolution tiers (first tier with a hit wins):
1. Case-insensitive exact label or key
2. Exact normalized name (affixes such as "University of" stripped)
3. Whole-word containment in either direction
4. Substring containment in either direction

Entries may list extra names under ``metadata.aliases`` ("Penn", "UPenn").
Within tiers 3 and 4 the entry whose normalized label is closest in length
to the candidate wins, so "Washington" prefers "University of Washington"
over "George Washington University". Remaining ties go to catalog order.
"""

from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Sequence

from unipreply.shared.logging import get_logger
from unipreply.shared.schemas import CatalogEntry
from unipreply.shared.utils import (
    DEFAULT_AFFIXES,
    contains_words,
    load_records,
    normalize_name,
    slugify,
)

logger = get_logger(__name__)


class Catalog:
    """
    Immutable collection of catalog entries with name resolution.

    Example:
        >>> catalog = Catalog([CatalogEntry(key="yale", label="Yale University")])
        >>> catalog.resolve("Yale").key
        'yale'
    """

    def __init__(
        self,
        entries: Iterable[CatalogEntry],
        affixes: Sequence[str] = DEFAULT_AFFIXES,
        min_containment_length: int = 3,
    ):
        self._entries: tuple[CatalogEntry, ...] = tuple(entries)
        self._affixes = tuple(affixes)
        self._min_length = min_containment_length

        self._by_key = {e.key: e for e in self._entries}
        # Labels and keys first so an alias never shadows another entry's label
        self._exact: dict[str, CatalogEntry] = {}
        for entry in self._entries:
            for text in (entry.label, entry.key):
                self._exact.setdefault(text.strip().lower(), entry)
        for entry in self._entries:
            for text in entry.aliases:
                self._exact.setdefault(text.strip().lower(), entry)

        # (entry, normalized forms) in catalog order
        self._normalized: tuple[tuple[CatalogEntry, tuple[str, ...]], ...] = tuple(
            (entry, self._forms(entry)) for entry in self._entries
        )

    def _forms(self, entry: CatalogEntry) -> tuple[str, ...]:
        label = normalize_name(entry.label, self._affixes)
        key = normalize_name(entry.key.replace("-", " ").replace("_", " "), self._affixes)
        aliases = [normalize_name(a, self._affixes) for a in entry.aliases]
        return tuple(dict.fromkeys(f for f in (label, key, *aliases) if f))

    # ─────────────────────────────────────────────────────────────────────────
    # Lookup
    # ─────────────────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)

    @property
    def entries(self) -> tuple[CatalogEntry, ...]:
        return self._entries

    def get(self, key: str) -> Optional[CatalogEntry]:
        """Get an entry by its canonical key."""
        return self._by_key.get(key)

    def get_by_slug(self, slug: str) -> Optional[CatalogEntry]:
        """Get an entry whose key or label slugifies to ``slug``."""
        for entry in self._entries:
            if slugify(entry.key) == slug or slugify(entry.label) == slug:
                return entry
        return None

    def resolve(self, candidate: str) -> Optional[CatalogEntry]:
        """
        Resolve a free-text institution name to a catalog entry.

        Args:
            candidate: Name as written by the user ("Yale", "UPenn", ...)

        Returns:
            Matching entry, or None when nothing matches. A miss means
            "no data available", not an error.
        """
        raw = candidate.strip().lower()
        if not raw:
            return None

        entry = self._exact.get(raw)
        if entry is not None:
            return entry

        needle = normalize_name(candidate, self._affixes)
        if not needle:
            return None

        for entry, forms in self._normalized:
            if needle in forms:
                return entry

        match = self._closest(needle, lambda a, b: contains_words(a, b) or contains_words(b, a))
        if match is not None:
            return match

        return self._closest(needle, self._substring_match)

    def _substring_match(self, needle: str, form: str) -> bool:
        shorter, longer = (needle, form) if len(needle) <= len(form) else (form, needle)
        return len(shorter) >= self._min_length and shorter in longer

    def _closest(self, needle: str, predicate) -> Optional[CatalogEntry]:  # type: ignore[no-untyped-def]
        best: Optional[CatalogEntry] = None
        best_distance: Optional[int] = None
        for entry, forms in self._normalized:
            distances = [abs(len(form) - len(needle)) for form in forms if predicate(needle, form)]
            if not distances:
                continue
            distance = min(distances)
            if best_distance is None or distance < best_distance:
                best, best_distance = entry, distance
        return best


# ─────────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────────


def catalog_from_records(
    records: Iterable[dict[str, Any]],
    affixes: Sequence[str] = DEFAULT_AFFIXES,
    min_containment_length: int = 3,
) -> Catalog:
    """Build a catalog from ``{value|key, label}`` dictionaries."""
    entries = []
    for record in records:
        data = dict(record)
        if "key" in data and "value" not in data:
            data["value"] = data.pop("key")
        entries.append(CatalogEntry.model_validate(data))
    return Catalog(entries, affixes=affixes, min_containment_length=min_containment_length)


def load_catalog(path: Optional[Path] = None) -> Catalog:
    """
    Load the catalog from the configured file.

    Args:
        path: Catalog JSON/JSONL file (default from config)

    Returns:
        Catalog instance. A missing file yields an empty catalog.
    """
    from unipreply.shared.config import get_settings

    settings = get_settings()
    path = path or settings.resolved_paths.catalog_file

    if not path.exists():
        logger.warning(f"Catalog file not found: {path}; resolution will find nothing")
        return Catalog([], affixes=settings.resolver.strip_affixes)

    catalog = catalog_from_records(
        load_records(path),
        affixes=settings.resolver.strip_affixes,
        min_containment_length=settings.resolver.min_containment_length,
    )
    logger.info(f"Loaded catalog with {len(catalog)} institutions from {path}")
    return catalog
