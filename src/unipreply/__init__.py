"""
UniPreply Advisor - Grounded chat over Common Data Set records
==============================================================

A chat assistant for students and parents that answers questions about
colleges using stored Common Data Set (CDS) digests and scholarship records.

Each chat request runs the grounding pipeline:

    message → resolve institutions → fetch records → compose system prompt
            → stream model output (SSE) → re-render tables and scholarship cards

The generative model is Gemini; the records live in a document store.
"""

__version__ = "0.1.0"
__author__ = "UniPreply Team"
__license__ = "MIT"

# Public API - lazy imports to avoid circular dependencies and speed up startup
__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Main modules (imported on demand)
    "shared",
    "store",
    "chat",
    "api",
    "cli",
]
