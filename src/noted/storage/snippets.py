"""Tokenizer and highlighted snippet extraction for search results.

The tokenizer mirrors the FTS5 ``unicode61`` rules the index is built with:
runs of letters and digits form tokens, everything else (whitespace,
punctuation, underscores) separates them, and tokens are lower-cased.
"""
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

_TOKEN_RE = re.compile(r"[^\W_]+")
_WHITESPACE_RE = re.compile(r"\s+")

ELLIPSIS = "..."


@dataclass(frozen=True)
class TokenSpan:
    """A token's position in the original text and its folded form."""

    start: int
    end: int
    term: str


def iter_token_spans(text: str) -> Iterator[TokenSpan]:
    for match in _TOKEN_RE.finditer(text):
        yield TokenSpan(match.start(), match.end(), match.group().lower())


def raw_tokens(text: Optional[str]) -> List[str]:
    """Split text into tokens without case folding."""
    if not text:
        return []
    return _TOKEN_RE.findall(text)


def tokenize(text: Optional[str]) -> List[str]:
    """Split text into folded search terms."""
    if not text:
        return []
    return [span.term for span in iter_token_spans(text)]


class TermMatcher:
    """Decides whether a document token matches a tokenized query.

    Every query term matches by equality. With ``prefix_last`` the final
    term also matches any token it is a prefix of, which is how the index
    treats a query that is still being typed.
    """

    def __init__(self, terms: Sequence[str], prefix_last: bool = False) -> None:
        self.terms = list(terms)
        self._exact = set(self.terms)
        self._prefix = self.terms[-1] if prefix_last and self.terms else None

    def __bool__(self) -> bool:
        return bool(self.terms)

    def matches(self, term: str) -> bool:
        if term in self._exact:
            return True
        return self._prefix is not None and term.startswith(self._prefix)

    def find(self, text: str) -> List[TokenSpan]:
        """All matching token spans in ``text``, in order."""
        return [span for span in iter_token_spans(text) if self.matches(span.term)]


def _window(text: str, anchor: TokenSpan, max_length: int) -> tuple:
    """Character window of at most ``max_length`` centred on ``anchor``."""
    if anchor.end - anchor.start >= max_length:
        return anchor.start, anchor.end

    centre = (anchor.start + anchor.end) // 2
    start = max(0, centre - max_length // 2)
    end = min(len(text), start + max_length)
    start = max(0, end - max_length)

    # Do not cut words in half at either edge
    for span in iter_token_spans(text):
        if span.start < start < span.end:
            start = span.start if span == anchor else span.end
        if span.start < end < span.end:
            end = span.end if span == anchor else span.start
        if span.start >= end:
            break
    return start, end


def _leading_window(text: str, max_length: int) -> tuple:
    if len(text) <= max_length:
        return 0, len(text)
    end = max_length
    for span in iter_token_spans(text):
        if span.start < end < span.end:
            # Keep a single oversized word rather than returning nothing
            end = span.start if span.start > 0 else max_length
            break
        if span.start >= end:
            break
    return 0, end


def _collapse(piece: str) -> str:
    return _WHITESPACE_RE.sub(" ", piece)


def highlight_window(
    text: str,
    start: int,
    end: int,
    spans: Sequence[TokenSpan],
    start_marker: str,
    end_marker: str,
) -> str:
    """Render ``text[start:end]`` with every span inside it wrapped in markers."""
    pieces: List[str] = []
    pos = start
    for span in spans:
        if span.start < start or span.end > end:
            continue
        pieces.append(_collapse(text[pos:span.start]))
        pieces.append(f"{start_marker}{text[span.start:span.end]}{end_marker}")
        pos = span.end
    pieces.append(_collapse(text[pos:end]))

    body = "".join(pieces).strip()
    if start > 0 and text[:start].strip():
        body = ELLIPSIS + body
    if end < len(text) and text[end:].strip():
        body = body + ELLIPSIS
    return body


def build_snippet(
    title: str,
    content: str,
    matcher: TermMatcher,
    max_length: int = 120,
    start_marker: str = "<mark>",
    end_marker: str = "</mark>",
) -> str:
    """Build the highlighted excerpt shown for a search hit.

    Uses ``content`` when it contains a match and ``title`` when only the
    title does. The window is centred on the first match. A note that only
    matched through its tags gets the unhighlighted start of its text.
    """
    for text in (content, title):
        if not text:
            continue
        spans = matcher.find(text)
        if spans:
            start, end = _window(text, spans[0], max_length)
            return highlight_window(text, start, end, spans, start_marker, end_marker)

    text = content if content.strip() else title
    start, end = _leading_window(text, max_length)
    return highlight_window(text, start, end, [], start_marker, end_marker)
