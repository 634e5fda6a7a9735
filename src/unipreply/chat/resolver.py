"""
Resolver Module - Find institution mentions in free-text chat messages.
======================================================================

Extracts candidate institution names from a user message and resolves them
against the catalog:

- "University of X" / "X University" / "X College" possessive forms
- "A vs B", "A versus B", "A or B", "A compared to B" comparisons
- Curated short names ("yale", "mit", ...) matched on word boundaries
- The institution of the page the user is viewing, prepended when missing

Candidates are deduplicated case-insensitively in first-seen order and
capped (default 3) to bound downstream fetch cost.
"""

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from unipreply.shared.logging import get_logger
from unipreply.shared.schemas import CatalogEntry
from unipreply.shared.utils import normalize_name
from unipreply.store.catalog import Catalog

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Patterns
# ─────────────────────────────────────────────────────────────────────────────


TOKEN_PATTERN = re.compile(r"[A-Za-z][A-Za-z.&'’-]*")

INSTITUTION_NOUNS = {"university", "college", "institute"}

COMPARISON_CONNECTORS = {"vs", "versus", "or"}

# Allowed inside a name but never at its edges ("University of Michigan")
INNER_WORDS = {"of", "at", "de", "la", "&"}

# Words that end a name run: question scaffolding and the attributes people ask about
STOP_WORDS = {
    # scaffolding
    "a", "about", "an", "and", "are", "better", "between", "both", "can", "compare",
    "compared", "comparing", "comparison", "could", "difference", "do", "does",
    "for", "from", "get", "give", "has", "have", "how", "i", "if", "in", "into",
    "is", "it", "its", "me", "more", "my", "of", "on", "or", "please", "should",
    "show", "tell", "than", "that", "the", "their", "there", "these", "this",
    "to", "vs", "versus", "was", "what", "whats", "what's", "when", "where",
    "which", "who", "why", "will", "with", "would", "you", "your", "list", "apply",
    "applying", "attend", "choose", "pick", "want", "like", "also", "but", "so",
    "any", "all", "much", "many", "most", "least", "cheaper", "harder", "easier",
    "best", "good", "bad", "vs.", "at", "regarding", "concerning", "including",
    "especially", "specifically", "during", "without", "against", "because",
    "while", "via", "per", "re", "terms",
    # attributes
    "acceptance", "admission", "admissions", "admit", "admitted", "act", "sat",
    "aid", "financial", "cost", "costs", "price", "tuition", "fees", "fee",
    "rate", "rates", "score", "scores", "ranking", "rankings", "rank",
    "enrollment", "retention", "ratio", "scholarship", "scholarships", "grant",
    "grants", "stats", "statistics", "data", "info", "information", "room",
    "board", "housing", "deadline", "deadlines", "requirements", "gpa",
    "students", "student", "class", "size", "programs", "program", "majors",
    "major", "chances", "odds", "application", "applications", "early",
    "regular", "decision", "options", "offer", "offers", "merit", "need",
}


@dataclass(frozen=True)
class _Token:
    text: str
    start: int
    end: int

    @property
    def lower(self) -> str:
        return self.text.lower().rstrip(".")


@dataclass(frozen=True)
class _Match:
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class ResolvedCandidate:
    """A candidate name and the catalog entry it resolved to (if any)."""

    name: str
    entry: Optional[CatalogEntry] = None

    @property
    def is_resolved(self) -> bool:
        return self.entry is not None

    @property
    def display_name(self) -> str:
        return self.entry.label if self.entry else self.name


# ─────────────────────────────────────────────────────────────────────────────
# Token Runs
# ─────────────────────────────────────────────────────────────────────────────


def _tokenize(text: str) -> list[_Token]:
    return [_Token(m.group(0), m.start(), m.end()) for m in TOKEN_PATTERN.finditer(text)]


def _is_name_token(token: _Token) -> bool:
    return token.lower in INNER_WORDS or token.lower not in STOP_WORDS


def _trim_inner(run: list[_Token]) -> list[_Token]:
    while run and run[0].lower in INNER_WORDS:
        run = run[1:]
    while run and run[-1].lower in INNER_WORDS:
        run = run[:-1]
    return run


def _is_lowercase_word(token: _Token) -> bool:
    return (
        token.text[:1].islower()
        and token.lower not in INSTITUTION_NOUNS
        and token.lower not in INNER_WORDS
    )


def _is_title_cased(run: list[_Token]) -> bool:
    return any(token.text[:1].isupper() for token in run)


def _run_forward(tokens: list[_Token], start: int, limit: int) -> list[_Token]:
    run: list[_Token] = []
    i = start
    while i < len(tokens) and len(run) < limit and _is_name_token(tokens[i]):
        run.append(tokens[i])
        i += 1

    # A capitalized name ends at its last capitalized word ("Brown regarding")
    if _is_title_cased(run):
        while len(run) > 1 and _is_lowercase_word(run[-1]) and run[-2].lower not in INNER_WORDS:
            run.pop()
    return _trim_inner(run)


def _run_backward(tokens: list[_Token], end: int, limit: int) -> list[_Token]:
    run: list[_Token] = []
    i = end
    while i >= 0 and len(run) < limit and _is_name_token(tokens[i]):
        run.insert(0, tokens[i])
        i -= 1

    if _is_title_cased(run):
        while len(run) > 1 and _is_lowercase_word(run[0]):
            run.pop(0)
    return _trim_inner(run)


def _span(message: str, run: list[_Token]) -> _Match:
    start, end = run[0].start, run[-1].end
    text = re.sub(r"['’]s$", "", message[start:end].rstrip(".?!,"))
    return _Match(text, start, end)


# ─────────────────────────────────────────────────────────────────────────────
# Matchers
# ─────────────────────────────────────────────────────────────────────────────


def _possessive_matches(message: str, tokens: list[_Token]) -> list[_Match]:
    """'University of X' and 'X University' forms."""
    matches = []
    for i, token in enumerate(tokens):
        if token.lower not in INSTITUTION_NOUNS:
            continue

        if i + 1 < len(tokens) and tokens[i + 1].lower == "of":
            run = _run_forward(tokens, i + 2, limit=3)
            if run:
                matches.append(_span(message, [token] + run))
                continue

        run = _run_backward(tokens, i - 1, limit=3)
        if run:
            matches.append(_span(message, run + [token]))
    return matches


def _comparison_matches(message: str, tokens: list[_Token]) -> list[_Match]:
    """'A vs B', 'A versus B', 'A or B', 'A compared to B' forms."""
    matches = []
    i = 0
    while i < len(tokens):
        word = tokens[i].lower
        width = 0
        if word in COMPARISON_CONNECTORS:
            width = 1
        elif word == "compared" and i + 1 < len(tokens) and tokens[i + 1].lower == "to":
            width = 2

        if width:
            left = _run_backward(tokens, i - 1, limit=4)
            right = _run_forward(tokens, i + width, limit=4)
            if left:
                matches.append(_span(message, left))
            if right:
                matches.append(_span(message, right))
        i += width or 1
    return matches


def _known_name_matches(message: str, known_names: Sequence[str]) -> list[_Match]:
    matches = []
    for name in known_names:
        m = re.search(rf"(?<![\w-]){re.escape(name)}(?![\w-])", message, re.IGNORECASE)
        if m:
            matches.append(_Match(m.group(0), m.start(), m.end()))
    return sorted(matches, key=lambda m: m.start)


def _dedupe(names: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for name in names:
        key = name.lower()
        if key not in seen:
            seen.add(key)
            result.append(name)
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Extraction
# ─────────────────────────────────────────────────────────────────────────────


def extract_candidates(
    message: str,
    page_institution: Optional[str] = None,
    known_names: Optional[Sequence[str]] = None,
    max_candidates: Optional[int] = 3,
) -> list[str]:
    """
    Extract candidate institution names from a chat message.

    Args:
        message: Raw user message
        page_institution: Institution of the page being viewed, if any
        known_names: Curated short names to scan for (default from config)
        max_candidates: Cap on returned names (None = no cap)

    Returns:
        Distinct candidate names in first-seen order

    Example:
        >>> extract_candidates("Compare Yale vs Brown tuition")
        ['Yale', 'Brown']
    """
    if known_names is None:
        from unipreply.shared.config import get_settings

        known_names = get_settings().resolver.known_short_names

    tokens = _tokenize(message)

    # Pattern matches in message order; drop matches nested inside longer ones
    pattern_matches = _possessive_matches(message, tokens) + _comparison_matches(message, tokens)
    pattern_matches.sort(key=lambda m: (m.start, -(m.end - m.start)))
    accepted: list[_Match] = []
    for match in pattern_matches:
        if any(a.start <= match.start and match.end <= a.end for a in accepted):
            continue
        accepted.append(match)
    candidates = _dedupe([m.text for m in accepted if m.text])

    for match in _known_name_matches(message, known_names):
        name = match.text.lower()
        if not any(name in c.lower() for c in candidates):
            candidates.append(match.text)

    if page_institution and page_institution.strip():
        page = page_institution.strip()
        first_word = (normalize_name(page) or page.lower()).split()[0]
        represented = any(
            first_word in c.lower() or c.lower() in page.lower() for c in candidates
        )
        if not represented:
            candidates.insert(0, page)

    candidates = _dedupe(candidates)
    if max_candidates is not None:
        candidates = candidates[:max_candidates]
    return candidates


# ─────────────────────────────────────────────────────────────────────────────
# Resolver
# ─────────────────────────────────────────────────────────────────────────────


class EntityResolver:
    """
    Extracts institution mentions and resolves them against the catalog.

    Example:
        >>> resolver = EntityResolver(catalog)
        >>> resolver.resolve_message("Compare Yale vs Brown")
        [ResolvedCandidate(name='Yale', ...), ResolvedCandidate(name='Brown', ...)]
    """

    def __init__(
        self,
        catalog: Catalog,
        known_names: Optional[Sequence[str]] = None,
        max_candidates: Optional[int] = None,
    ):
        from unipreply.shared.config import get_settings

        settings = get_settings().resolver
        self.catalog = catalog
        self.known_names = list(known_names) if known_names is not None else settings.known_short_names
        self.max_candidates = max_candidates if max_candidates is not None else settings.max_candidates

    def extract(self, message: str, page_institution: Optional[str] = None) -> list[str]:
        """Extract candidate names (see ``extract_candidates``)."""
        candidates = extract_candidates(
            message,
            page_institution=page_institution,
            known_names=self.known_names,
            max_candidates=self.max_candidates,
        )
        logger.info(f"Candidates for message: {candidates}")
        return candidates

    def resolve(self, candidate: str) -> Optional[CatalogEntry]:
        """Resolve one name; None means no data is available for it."""
        entry = self.catalog.resolve(candidate)
        if entry is None:
            logger.debug(f"No catalog match for '{candidate}'")
        else:
            logger.debug(f"Resolved '{candidate}' -> {entry.key}")
        return entry

    def resolve_message(
        self,
        message: str,
        page_institution: Optional[str] = None,
    ) -> list[ResolvedCandidate]:
        """Extract candidates and resolve each against the catalog."""
        return [
            ResolvedCandidate(name=name, entry=self.resolve(name))
            for name in self.extract(message, page_institution)
        ]
