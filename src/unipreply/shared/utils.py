"""
Utilities Module - Common helper functions.
==========================================

Provides utility functions for:
- Institution name normalization and matching
- URL slugs for catalog entries
- File I/O (JSON, JSONL)
- Numeric coercion of CDS values
"""

import json
import re
import unicodedata
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from unipreply.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_AFFIXES = ("university of ", " university", " college")


# ─────────────────────────────────────────────────────────────────────────────
# Name Normalization
# ─────────────────────────────────────────────────────────────────────────────


def normalize_name(name: str, affixes: Sequence[str] = DEFAULT_AFFIXES) -> str:
    """
    Normalize an institution name for matching.

    Lower-cases, trims, collapses whitespace, and strips common affixes.

    Example:
        >>> normalize_name("  University of Pennsylvania ")
        'pennsylvania'
        >>> normalize_name("Brown University")
        'brown'
    """
    normalized = re.sub(r"\s+", " ", name.strip().lower())
    for affix in affixes:
        normalized = normalized.replace(affix, " ")
    return re.sub(r"\s+", " ", normalized).strip()


def contains_words(haystack: str, needle: str) -> bool:
    """True if ``needle`` occurs in ``haystack`` on word boundaries."""
    if not needle:
        return False
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack) is not None


EMPHASIS_PATTERNS = [
    re.compile(r"\*\*([^*]+)\*\*"),
    re.compile(r"\*([^*]+)\*"),
    re.compile(r"__([^_]+)__"),
    re.compile(r"_([^_]+)_"),
]


def strip_emphasis(text: str) -> str:
    """
    Remove paired bold/italic markers, keeping the enclosed text.

    Unpaired markers are left alone.

    Example:
        >>> strip_emphasis("**Yale** is *very* selective")
        'Yale is very selective'
    """
    for pattern in EMPHASIS_PATTERNS:
        text = pattern.sub(r"\1", text)
    return text


def slugify(name: str) -> str:
    """
    Convert an institution name or key to a URL slug.

    Example:
        >>> slugify("Université de Montréal")
        'universite-de-montreal'
    """
    text = unicodedata.normalize("NFD", name.lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"\s+", "-", text)
    return re.sub(r"[^a-z0-9-]", "", text)


# ─────────────────────────────────────────────────────────────────────────────
# Numeric Helpers
# ─────────────────────────────────────────────────────────────────────────────


def to_number(value: Any) -> Optional[float]:
    """
    Coerce a CDS value ("12,345", "$64,700", 1000) to a float.

    Returns None for missing or non-numeric values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[,$\s]", "", value)
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def acceptance_rate(applied: Any, admitted: Any) -> Optional[str]:
    """
    Admitted / applied × 100, one decimal, as "NN.N%".

    Only computed when both counts are present and non-zero.

    Example:
        >>> acceptance_rate(1000, 100)
        '10.0%'
        >>> acceptance_rate(None, 100) is None
        True
    """
    applied_n = to_number(applied)
    admitted_n = to_number(admitted)
    if not applied_n or not admitted_n:
        return None
    return f"{admitted_n / applied_n * 100:.1f}%"


# ─────────────────────────────────────────────────────────────────────────────
# File I/O
# ─────────────────────────────────────────────────────────────────────────────


def load_json(file_path: Path) -> Any:
    """
    Load JSON from file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    with open(file_path, encoding="utf-8") as f:
        return json.load(f)


def save_json(data: Any, file_path: Path, indent: int = 2) -> None:
    """Save data as JSON, creating parent directories."""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False)
    logger.debug(f"Saved JSON to {file_path}")


def load_jsonl(file_path: Path) -> Iterator[dict[str, Any]]:
    """
    Load records from a JSONL file, one JSON object per line.

    Blank lines are skipped; malformed lines are logged and skipped.
    """
    with open(file_path, encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping invalid JSON at line {line_num} in {file_path}: {e}")


def load_records(file_path: Path) -> list[dict[str, Any]]:
    """Load a list of records from ``.json`` (array) or ``.jsonl``."""
    if file_path.suffix == ".jsonl":
        return list(load_jsonl(file_path))
    data = load_json(file_path)
    if isinstance(data, dict):
        # {id: record} mapping, as exported from a document collection
        return [{"id": k, **v} if isinstance(v, dict) else v for k, v in data.items()]
    return list(data)
