"""
Chat Module - Grounded chat pipeline.
=====================================

- resolver: Institution mentions in free text → catalog entries
- fetcher: CDS and scholarship records for resolved institutions
- prompts: System instruction composition
- session: Streaming Gemini sessions and event encoding
- renderer: Streamed text → display blocks
"""

from unipreply.chat.fetcher import (
    FetchResult,
    InstitutionLookup,
    RecordFetcher,
    detect_scholarship_intent,
)
from unipreply.chat.prompts import (
    PromptComposer,
    comparison_rows,
    compose_system_prompt,
    format_cds_digest,
)
from unipreply.chat.renderer import parse_table, render_blocks
from unipreply.chat.resolver import EntityResolver, ResolvedCandidate, extract_candidates
from unipreply.chat.session import (
    ChatModel,
    ChatService,
    ChatSession,
    ChatSessionError,
    ErrorKind,
    GeminiChatModel,
    SessionState,
    StreamError,
    accumulate_stream,
    classify_upstream_error,
    iter_stream_events,
)

__all__ = [
    # Resolver
    "EntityResolver",
    "ResolvedCandidate",
    "extract_candidates",
    # Fetcher
    "FetchResult",
    "InstitutionLookup",
    "RecordFetcher",
    "detect_scholarship_intent",
    # Prompts
    "PromptComposer",
    "comparison_rows",
    "compose_system_prompt",
    "format_cds_digest",
    # Session
    "ChatModel",
    "ChatService",
    "ChatSession",
    "ChatSessionError",
    "ErrorKind",
    "GeminiChatModel",
    "SessionState",
    "StreamError",
    "accumulate_stream",
    "classify_upstream_error",
    "iter_stream_events",
    # Renderer
    "parse_table",
    "render_blocks",
]
