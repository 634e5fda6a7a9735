"""
API Module - FastAPI application.
=================================

- server: ``create_app()`` exposing the streamed chat endpoint
"""

from unipreply.api.server import create_app

__all__ = ["create_app"]
