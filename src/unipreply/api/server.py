"""
Server Module - HTTP endpoint for streamed, grounded chat.
==========================================================

Endpoints:
    POST /api/gemini/chat   - Stream an answer as server-sent events
    GET  /health            - Health check with catalog and store status

Error bodies are always ``{"error": "<message>"}``: 400 for bad input,
405 for the wrong method, 429 when the model is rate limited and 500 for
other failures before streaming starts.
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from unipreply import __version__
from unipreply.chat.session import ChatModel, ChatService, ChatSessionError
from unipreply.shared.config import get_settings
from unipreply.shared.logging import RequestLogger, get_logger
from unipreply.shared.schemas import ChatRequest
from unipreply.store.catalog import Catalog, load_catalog
from unipreply.store.documents import DocumentStore, get_document_store

logger = get_logger(__name__)

MESSAGES_REQUIRED = "Messages array is required"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _messages_invalid(errors: list[dict]) -> bool:
    """True when the body is missing or the ``messages`` field failed validation."""
    for err in errors:
        loc = tuple(err.get("loc", ()))
        if loc == ("body",) or (len(loc) > 1 and loc[1] == "messages"):
            return True
    return False


# ─────────────────────────────────────────────────────────────────────────────
# App Factory
# ─────────────────────────────────────────────────────────────────────────────


def create_app(
    catalog: Optional[Catalog] = None,
    store: Optional[DocumentStore] = None,
    model_factory: Optional[Callable[[], ChatModel]] = None,
    open_retries: Optional[int] = None,
) -> FastAPI:
    """
    Create the API application.

    The catalog and store are built once per process (at startup unless
    injected) and shared read-only by every request.

    Args:
        catalog: Institution catalog (default: loaded from the catalog file)
        store: Document store (default: JSON collections from config)
        model_factory: Creates a chat model per request (default: Gemini)
        open_retries: Retries for opening the model stream (default from config)

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _service(app)
        yield

    app = FastAPI(
        title="UniPreply Advisor API",
        version=__version__,
        description="College admissions chat grounded in Common Data Set records.",
        lifespan=lifespan,
    )
    app.state.catalog = catalog
    app.state.store = store
    app.state.model_factory = model_factory
    app.state.open_retries = open_retries
    app.state.service = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─────────────────────────────────────────────────────────────────────
    # Error Handlers
    # ─────────────────────────────────────────────────────────────────────

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 405:
            return _error(405, "Method not allowed")
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        logger.info(f"Rejected chat request: {len(errors)} validation errors")
        if _messages_invalid(errors):
            return _error(400, MESSAGES_REQUIRED)
        return _error(400, "Invalid request body")

    # ─────────────────────────────────────────────────────────────────────
    # Routes
    # ─────────────────────────────────────────────────────────────────────

    @app.get("/health")
    async def health(request: Request) -> dict:
        service = _service(request.app)
        return {
            "status": "healthy",
            "version": __version__,
            "catalog_entries": len(service.catalog),
            "store": service.store.get_info(),
        }

    @app.post("/api/gemini/chat")
    async def chat(payload: ChatRequest, request: Request):
        if not payload.messages:
            return _error(400, MESSAGES_REQUIRED)

        log = RequestLogger(logger)
        log.info(f"Chat request: {len(payload.messages)} turns")

        service = _service(request.app)
        try:
            session = await service.open_session(payload)
        except ChatSessionError as e:
            log.warning(f"Rejected before streaming ({e.status_code}): {e.message}")
            return _error(e.status_code, e.message)
        except Exception as e:
            log.error(f"Chat request failed before streaming: {e}")
            return _error(500, str(e) or "Internal server error")

        log.info("Streaming response")
        return StreamingResponse(
            session.sse(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app


def _service(app: FastAPI) -> ChatService:
    """Build the chat service on first use and keep it on app state."""
    if app.state.service is None:
        catalog = app.state.catalog if app.state.catalog is not None else load_catalog()
        store = app.state.store if app.state.store is not None else get_document_store()
        app.state.service = ChatService(
            catalog,
            store,
            model_factory=app.state.model_factory,
            open_retries=app.state.open_retries,
        )
        logger.info(f"Chat service ready: {len(catalog)} catalog entries, store={store.store_name}")
    return app.state.service
