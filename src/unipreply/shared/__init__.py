"""
Shared Module - Common utilities, configuration, schemas, and logging.
======================================================================

This module provides foundational components used across all other modules:

- config: Configuration loading and management
- logging: Structured logging setup
- schemas: Pydantic data models
- utils: Name normalization, slugs, file I/O
"""

from unipreply.shared.config import get_settings, Settings
from unipreply.shared.logging import get_logger, setup_logging
from unipreply.shared.schemas import (
    CatalogEntry,
    ChatRequest,
    ConversationTurn,
    InstitutionRecord,
    RenderBlock,
    ScholarshipRecord,
    StreamEvent,
)
from unipreply.shared.utils import (
    acceptance_rate,
    load_json,
    load_jsonl,
    load_records,
    normalize_name,
    save_json,
    slugify,
    strip_emphasis,
)

__all__ = [
    # Config
    "get_settings",
    "Settings",
    # Logging
    "get_logger",
    "setup_logging",
    # Schemas
    "CatalogEntry",
    "ChatRequest",
    "ConversationTurn",
    "InstitutionRecord",
    "RenderBlock",
    "ScholarshipRecord",
    "StreamEvent",
    # Utils
    "acceptance_rate",
    "load_json",
    "load_jsonl",
    "load_records",
    "normalize_name",
    "save_json",
    "slugify",
    "strip_emphasis",
]
