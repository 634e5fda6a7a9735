"""
Session Module - Streaming chat sessions against the Gemini API.
================================================================

One ChatSession per request, moving through:

    Idle → ResolvingContext → SessionOpen → Streaming → Completed | Failed

- The model session is seeded with a priming exchange: a synthetic
  "Hello" user turn and a model turn carrying the composed system
  instruction, followed by every prior turn except the newest message.
- Fragments are stripped of emphasis markers and relayed in arrival order
  as ``data: {"content": ...}`` events, ending in ``{"done": true}``.
- Failures before the first fragment is relayed raise ChatSessionError
  (429 for rate limiting, 500 otherwise). Later failures end the stream
  with an in-band ``{"error": ...}`` event.

Also provides the client-side helpers that decode an event stream back
into StreamEvents.
"""

import json
from abc import ABC, abstractmethod
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Iterable, Iterator, Optional, Sequence

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from unipreply.chat.fetcher import FetchResult, RecordFetcher, detect_scholarship_intent
from unipreply.chat.prompts import PromptComposer
from unipreply.chat.resolver import EntityResolver
from unipreply.shared.config import get_settings
from unipreply.shared.logging import get_logger
from unipreply.shared.schemas import ChatRequest, ConversationTurn, Role, StreamEvent
from unipreply.shared.utils import strip_emphasis
from unipreply.store.catalog import Catalog
from unipreply.store.documents import DocumentStore

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a minute and try again."

PRIMING_USER_TURN = "Hello"


# ─────────────────────────────────────────────────────────────────────────────
# States and Errors
# ─────────────────────────────────────────────────────────────────────────────


class SessionState(str, Enum):
    IDLE = "idle"
    RESOLVING_CONTEXT = "resolving_context"
    SESSION_OPEN = "session_open"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    UPSTREAM_FAILURE = "upstream_failure"


def classify_upstream_error(error: BaseException) -> ErrorKind:
    """
    Classify a model API error by its message text.

    Example:
        >>> classify_upstream_error(RuntimeError("429 Resource has been exhausted"))
        <ErrorKind.RATE_LIMITED: 'rate_limited'>
    """
    text = str(error).lower()
    if "429" in text or "quota" in text:
        return ErrorKind.RATE_LIMITED
    return ErrorKind.UPSTREAM_FAILURE


def user_facing_message(error: BaseException) -> str:
    """Readable message for the client: a cooldown hint or the raw error text."""
    if classify_upstream_error(error) == ErrorKind.RATE_LIMITED:
        return RATE_LIMIT_MESSAGE
    return str(error) or error.__class__.__name__


class ChatSessionError(Exception):
    """A failure before any event was sent; carries the HTTP status to answer with."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    @classmethod
    def from_upstream(cls, error: BaseException) -> "ChatSessionError":
        status = 429 if classify_upstream_error(error) == ErrorKind.RATE_LIMITED else 500
        return cls(status, user_facing_message(error))


class StreamError(RuntimeError):
    """An in-band ``{"error": ...}`` event was received by a stream reader."""


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, (ValueError, ImportError)):
        return False
    return classify_upstream_error(error) != ErrorKind.RATE_LIMITED


# ─────────────────────────────────────────────────────────────────────────────
# Chat Models
# ─────────────────────────────────────────────────────────────────────────────


class ChatModel(ABC):
    """
    Conversational model interface.

    ``open_stream`` starts a session from a seeded history and submits one
    message; the returned async iterator yields text fragments.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass

    @abstractmethod
    async def open_stream(
        self,
        history: list[dict],
        message: str,
    ) -> AsyncIterator[str]:
        pass


def _chunk_text(chunk) -> str:
    # .text raises ValueError for chunks without text parts (e.g. safety stops)
    try:
        return chunk.text or ""
    except ValueError as e:
        logger.debug(f"Skipping chunk without text: {e}")
        return ""


class GeminiChatModel(ChatModel):
    """
    Gemini chat model using google-generativeai.

    Example:
        >>> model = GeminiChatModel()
        >>> stream = await model.open_stream(history, "Compare Yale vs Brown")
        >>> async for fragment in stream:
        ...     print(fragment, end="")
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        api_key: Optional[str] = None,
    ):
        """
        Initialize the model wrapper.

        Args:
            model_name: Gemini model name (default from config / GEMINI_MODEL)
            temperature: Generation temperature (default from config)
            max_tokens: Maximum tokens to generate (default from config)
            api_key: Gemini API key (default from GEMINI_API_KEY)
        """
        settings = get_settings()
        gen_config = settings.generation

        self._model_name = model_name or settings.get_effective_model()
        self.temperature = temperature if temperature is not None else gen_config.temperature
        self.max_tokens = max_tokens or gen_config.max_output_tokens
        self.top_p = gen_config.top_p
        self.top_k = gen_config.top_k
        self.api_key = api_key or settings.gemini_api_key

        self._client = None
        self._model = None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def client(self):
        """Lazy-load Gemini client."""
        if self._client is None:
            if not self.api_key:
                raise ValueError(
                    "Gemini API key not configured. Set GEMINI_API_KEY environment variable."
                )
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self._client = genai
            logger.debug("Gemini client initialized")
        return self._client

    @property
    def model(self):
        """Lazy-load Gemini model."""
        if self._model is None:
            self._model = self.client.GenerativeModel(
                model_name=self._model_name,
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_tokens,
                    "top_p": self.top_p,
                    "top_k": self.top_k,
                },
            )
            logger.debug(f"Gemini model loaded: {self._model_name}")
        return self._model

    async def open_stream(self, history: list[dict], message: str) -> AsyncIterator[str]:
        chat = self.model.start_chat(history=history)
        response = await chat.send_message_async(message, stream=True)
        return self._fragments(response)

    async def _fragments(self, response) -> AsyncIterator[str]:
        async for chunk in response:
            text = _chunk_text(chunk)
            if text:
                yield text


# ─────────────────────────────────────────────────────────────────────────────
# Chat Session
# ─────────────────────────────────────────────────────────────────────────────


def build_history(system_prompt: str, turns: Sequence[ConversationTurn]) -> list[dict]:
    """
    Seed history for the model session.

    The priming exchange comes first because the session must open with a
    user turn; prior assistant turns are sent with the "model" role. The
    newest turn is excluded (it is the message submitted to the stream).
    """
    history = [
        {"role": "user", "parts": [PRIMING_USER_TURN]},
        {"role": "model", "parts": [system_prompt]},
    ]
    for turn in turns[:-1]:
        role = "model" if turn.role == Role.ASSISTANT else "user"
        history.append({"role": role, "parts": [turn.content]})
    return history


class ChatSession:
    """
    A single streamed model response.

    Example:
        >>> session = ChatSession(model, system_prompt, turns)
        >>> await session.start()          # may raise ChatSessionError
        >>> async for line in session.sse():
        ...     send(line)
    """

    def __init__(
        self,
        model: ChatModel,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        open_retries: Optional[int] = None,
    ):
        if not turns:
            raise ValueError("At least one conversation turn is required")

        self.model = model
        self.system_prompt = system_prompt
        self.turns = list(turns)
        self.open_retries = (
            open_retries if open_retries is not None else get_settings().generation.open_retries
        )

        self.state = SessionState.IDLE
        self.fragments_sent = 0
        self._stream: Optional[AsyncIterator[str]] = None
        self._first: Optional[str] = None

    @property
    def message(self) -> str:
        return self.turns[-1].content

    @property
    def history(self) -> list[dict]:
        return build_history(self.system_prompt, self.turns)

    async def _open(self) -> None:
        self._stream = await self.model.open_stream(self.history, self.message)
        self._first = None
        async for fragment in self._stream:
            if fragment:
                self._first = fragment
                break

    async def resolve_context(self, build_prompt: Callable[[], Awaitable[str]]) -> None:
        """Compose the system instruction before the stream is opened."""
        self.state = SessionState.RESOLVING_CONTEXT
        self.system_prompt = await build_prompt()

    async def start(self) -> None:
        """
        Open the model stream and wait for its first fragment.

        Nothing has been sent to the client yet, so failures here are
        retried (rate limits excepted) and then raised as ChatSessionError.
        """
        self.state = SessionState.SESSION_OPEN
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.open_retries + 1),
                wait=wait_exponential(multiplier=1, min=1, max=8),
                retry=retry_if_exception(_is_retryable),
                reraise=True,
            ):
                with attempt:
                    await self._open()
        except Exception as e:
            self.state = SessionState.FAILED
            logger.error(f"Opening {self.model.model_name} stream failed: {e}")
            raise ChatSessionError.from_upstream(e) from e

        self.state = SessionState.STREAMING
        logger.info(f"Stream opened on {self.model.model_name}")

    async def events(self) -> AsyncIterator[StreamEvent]:
        """
        Relay fragments as events. Always ends with exactly one terminal event.
        """
        if self.state in (SessionState.IDLE, SessionState.SESSION_OPEN):
            await self.start()

        try:
            if self._first is not None:
                yield self._emit(self._first)
            if self._stream is not None:
                async for fragment in self._stream:
                    if fragment:
                        yield self._emit(fragment)
        except Exception as e:
            self.state = SessionState.FAILED
            logger.error(f"Stream failed after {self.fragments_sent} fragments: {e}")
            yield StreamEvent(error=user_facing_message(e))
            return

        self.state = SessionState.COMPLETED
        logger.info(f"Stream completed: {self.fragments_sent} fragments")
        yield StreamEvent(done=True)

    def _emit(self, fragment: str) -> StreamEvent:
        self.fragments_sent += 1
        return StreamEvent(content=strip_emphasis(fragment))

    async def sse(self) -> AsyncIterator[str]:
        """Events encoded as ``data: <json>`` lines."""
        async for event in self.events():
            yield event.to_sse()


# ─────────────────────────────────────────────────────────────────────────────
# Chat Service
# ─────────────────────────────────────────────────────────────────────────────


class ChatService:
    """
    Runs the request pipeline: resolve → fetch → compose → open session.

    The catalog and store are constructed once and injected; the model is
    created per request through ``model_factory``.

    Example:
        >>> service = ChatService(catalog, store)
        >>> session = await service.open_session(request)
        >>> async for line in session.sse():
        ...     print(line, end="")
    """

    def __init__(
        self,
        catalog: Catalog,
        store: DocumentStore,
        model_factory: Optional[Callable[[], ChatModel]] = None,
        composer: Optional[PromptComposer] = None,
        open_retries: Optional[int] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.model_factory = model_factory or GeminiChatModel
        self.resolver = EntityResolver(catalog)
        self.fetcher = RecordFetcher(store, catalog)
        self.composer = composer or PromptComposer()
        self.open_retries = open_retries

    async def build_system_prompt(self, request: ChatRequest) -> str:
        """
        Compose the system instruction for the newest message.

        Lookup failures degrade to "no data"; composition always succeeds.
        """
        message = request.messages[-1].content
        context = request.context
        page_institution = context.college_name if context else None

        try:
            resolved = self.resolver.resolve_message(message, page_institution)
            intent = detect_scholarship_intent(
                message, get_settings().fetcher.scholarship_keywords
            )
            fetched = await self.fetcher.fetch(resolved, scholarship_intent=intent)
        except Exception as e:
            logger.error(f"Context resolution failed, continuing without records: {e}")
            fetched = FetchResult()

        return self.composer.compose(fetched, context)

    async def open_session(self, request: ChatRequest) -> ChatSession:
        """
        Prepare and start a session for a validated request.

        Raises:
            ChatSessionError: If the model stream could not be opened
        """
        if not request.messages:
            raise ChatSessionError(400, "Messages array is required")

        try:
            model = self.model_factory()
        except Exception as e:
            logger.error(f"Model creation failed: {e}")
            raise ChatSessionError(500, str(e)) from e

        session = ChatSession(model, "", request.messages, self.open_retries)
        await session.resolve_context(lambda: self.build_system_prompt(request))
        await session.start()
        return session


# ─────────────────────────────────────────────────────────────────────────────
# Stream Reading
# ─────────────────────────────────────────────────────────────────────────────


def iter_stream_events(lines: Iterable[str]) -> Iterator[StreamEvent]:
    """
    Decode ``data: <json>`` lines into StreamEvents.

    Blank lines, non-data lines and undecodable payloads are skipped.
    """
    for line in lines:
        line = line.strip()
        if not line.startswith("data:"):
            continue
        payload = line[len("data:"):].strip()
        try:
            yield StreamEvent.model_validate(json.loads(payload))
        except ValueError:
            logger.debug(f"Skipping undecodable stream line: {payload[:80]}")


def accumulate_stream(lines: Iterable[str]) -> str:
    """
    Concatenate streamed content up to the terminal event.

    Raises:
        StreamError: If the stream ends with an error event
    """
    parts = []
    for event in iter_stream_events(lines):
        if event.error is not None:
            raise StreamError(event.error)
        if event.content:
            parts.append(event.content)
        if event.done:
            break
    return "".join(parts)
