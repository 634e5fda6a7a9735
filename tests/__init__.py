"""
Tests Package - Unit and integration tests for UniPreply Advisor.
=================================================================

Test modules:
- test_store: Utils, schemas, catalog, document stores, logging, config
- test_chat: Candidate extraction, resolution, fetching, prompt composition
- test_session: Streaming sessions, error classification, Gemini wrapper
- test_renderer: Tables, plain text, scholarship cards
- test_api: HTTP endpoint, SSE responses, error bodies

Run tests with:
    pytest tests/
    pytest tests/ -v -m "not slow"
"""
