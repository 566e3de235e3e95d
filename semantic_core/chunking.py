"""Text segmentation into retrieval-sized chunks.

This module implements:
- Token estimation (ceil(len / 4); an approximation, not a real tokenizer)
- Paragraph-first chunking with overlap and sentence-level decomposition of
  oversized paragraphs
- Sliding word-window chunking when boundaries are not respected
- Page-aware chunking for PDF text carrying "Page N" / "[Page N]" markers
- Content-type dispatch (ContentType -> Segmenter) and sizing policies
  (get_chunk_config, should_chunk)

Chunk offsets (start_char/end_char) point into the original text and cover the
chunk body only; the overlap prefix copied from the previous chunk is excluded
and its length is reported as metadata.overlap_chars.
"""
import math
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Protocol, Union

from semantic_core.exceptions import ValidationError

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
_WORD = re.compile(r"\S+")
_HEADING = re.compile(r"^#{1,6}\s+(.+)$")
_PAGE_MARKER = re.compile(r"(?:^|\n)[ \t]*\[?Page\s+(\d+)\]?", re.IGNORECASE)

PARAGRAPH_SEP = "\n\n"
SENTENCE_SEP = " "
WORDS_PER_TOKEN = 0.75


class BoundaryType(str, Enum):
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"
    ARBITRARY = "arbitrary"


class ContentType(str, Enum):
    TEXT = "text"
    URL = "url"
    PDF = "pdf"
    NOTE = "note"
    IMAGE = "image"


# Minimum content length (exclusive) before a source is chunked; absent types never chunk.
CHUNK_THRESHOLDS: Dict[ContentType, int] = {
    ContentType.PDF: 500,
    ContentType.URL: 500,
    ContentType.TEXT: 1000,
    ContentType.NOTE: 1000,
}


@dataclass(frozen=True)
class ChunkConfig:
    """Chunk sizing knobs.

    Attributes:
        max_tokens: Upper bound on a chunk's token estimate.
        overlap_tokens: Approximate size of the tail carried into the next chunk.
        min_chunk_size: Trailing fragments shorter than this (chars) are folded
            into the previous chunk when that keeps the chunk within bounds.
        respect_boundaries: Paragraph/sentence mode when True, word window otherwise.
    """
    max_tokens: int = 500
    overlap_tokens: int = 50
    min_chunk_size: int = 100
    respect_boundaries: bool = True

    def __post_init__(self) -> None:
        if self.max_tokens <= 0:
            raise ValidationError("max_tokens must be positive", field="max_tokens")
        if self.overlap_tokens < 0:
            raise ValidationError("overlap_tokens cannot be negative", field="overlap_tokens")
        if self.overlap_tokens >= self.max_tokens:
            raise ValidationError("overlap_tokens must be smaller than max_tokens", field="overlap_tokens")
        if self.min_chunk_size < 0:
            raise ValidationError("min_chunk_size cannot be negative", field="min_chunk_size")


@dataclass
class ChunkMetadata:
    start_char: int
    end_char: int
    token_count: int
    type: BoundaryType
    heading: Optional[str] = None
    page_number: Optional[int] = None
    overlap_chars: int = 0

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "ChunkMetadata":
        return cls(
            start_char=int(data.get("start_char", 0)),
            end_char=int(data.get("end_char", 0)),
            token_count=int(data.get("token_count", 0)),
            type=BoundaryType(data.get("type", BoundaryType.PARAGRAPH.value)),
            heading=data.get("heading"),
            page_number=data.get("page_number"),
            overlap_chars=int(data.get("overlap_chars", 0)),
        )


@dataclass
class DocumentChunk:
    index: int
    content: str
    metadata: ChunkMetadata

    @property
    def body(self) -> str:
        """Chunk content without the overlap prefix."""
        return self.content[self.metadata.overlap_chars:]


class _Span(NamedTuple):
    start: int
    end: int
    text: str


@dataclass
class _Draft:
    units: List[_Span]
    sep: str
    type: BoundaryType
    overlap: str = ""
    heading: Optional[str] = None
    page_number: Optional[int] = None

    @property
    def body(self) -> str:
        return self.sep.join(u.text for u in self.units)

    @property
    def content(self) -> str:
        if self.overlap:
            return self.overlap + self.sep + self.body
        return self.body

    @property
    def overlap_chars(self) -> int:
        return len(self.overlap) + len(self.sep) if self.overlap else 0

    def to_chunk(self, index: int) -> DocumentChunk:
        content = self.content
        return DocumentChunk(
            index=index,
            content=content,
            metadata=ChunkMetadata(
                start_char=self.units[0].start,
                end_char=self.units[-1].end,
                token_count=estimate_tokens(content),
                type=self.type,
                heading=self.heading,
                page_number=self.page_number,
                overlap_chars=self.overlap_chars,
            ),
        )


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ~4 characters per token for English text."""
    return math.ceil(len(text) / 4)


def _split_spans(text: str, pattern: "re.Pattern[str]", offset: int) -> List[_Span]:
    """Split on ``pattern``, trimming pieces and keeping absolute offsets."""
    spans: List[_Span] = []
    start = 0
    for m in pattern.finditer(text):
        _append_trimmed(spans, text, start, m.start(), offset)
        start = m.end()
    _append_trimmed(spans, text, start, len(text), offset)
    return spans


def _append_trimmed(spans: List[_Span], text: str, start: int, end: int, offset: int) -> None:
    segment = text[start:end]
    stripped = segment.strip()
    if not stripped:
        return
    lead = len(segment) - len(segment.lstrip())
    begin = offset + start + lead
    spans.append(_Span(begin, begin + len(stripped), stripped))


def _overlap_tail(text: str, overlap_tokens: int) -> str:
    """Trailing words of ``text`` whose estimate stays within ``overlap_tokens``."""
    if overlap_tokens <= 0:
        return ""
    taken: List[str] = []
    length = -1
    for word in reversed(text.split()):
        length += len(word) + 1
        if math.ceil(length / 4) > overlap_tokens:
            break
        taken.append(word)
    return " ".join(reversed(taken))


def _seeded(unit: _Span, previous: str, sep: str, kind: BoundaryType, heading: Optional[str], cfg: ChunkConfig) -> _Draft:
    draft = _Draft(units=[unit], sep=sep, type=kind, heading=heading, overlap=_overlap_tail(previous, cfg.overlap_tokens))
    # the overlap seed must never push a chunk past max_tokens
    if draft.overlap and estimate_tokens(draft.content) > cfg.max_tokens:
        draft.overlap = ""
    return draft


def _split_words(span: _Span, max_tokens: int) -> List[_Span]:
    """Break a single oversized sentence at word boundaries."""
    max_chars = max_tokens * 4
    pieces: List[_Span] = []
    words: List[_Span] = []
    length = -1
    for m in _WORD.finditer(span.text):
        word = _Span(span.start + m.start(), span.start + m.end(), m.group())
        if words and length + len(word.text) + 1 > max_chars:
            pieces.append(_Span(words[0].start, words[-1].end, " ".join(w.text for w in words)))
            words, length = [], -1
        words.append(word)
        length += len(word.text) + 1
    if words:
        pieces.append(_Span(words[0].start, words[-1].end, " ".join(w.text for w in words)))
    return pieces


def _accumulate(units: List[_Span], sep: str, kind: BoundaryType, heading: Optional[str], cfg: ChunkConfig) -> List[_Draft]:
    """Greedy accumulate-and-overlap over already bounded units."""
    drafts: List[_Draft] = []
    current: Optional[_Draft] = None
    for unit in units:
        if current is None:
            current = _Draft(units=[unit], sep=sep, type=kind, heading=heading)
        elif estimate_tokens(current.content + sep + unit.text) <= cfg.max_tokens:
            current.units.append(unit)
        else:
            drafts.append(current)
            current = _seeded(unit, current.content, sep, kind, heading, cfg)
    if current is not None:
        drafts.append(current)
    return drafts


def _sentence_drafts(paragraph: _Span, heading: Optional[str], cfg: ChunkConfig) -> List[_Draft]:
    units: List[_Span] = []
    for sentence in _split_spans(paragraph.text, _SENTENCE_BREAK, paragraph.start):
        if estimate_tokens(sentence.text) > cfg.max_tokens:
            units.extend(_split_words(sentence, cfg.max_tokens))
        else:
            units.append(sentence)
    return _accumulate(units, SENTENCE_SEP, BoundaryType.SENTENCE, heading, cfg)


def _paragraph_drafts(text: str, cfg: ChunkConfig, offset: int) -> List[_Draft]:
    drafts: List[_Draft] = []
    current: Optional[_Draft] = None
    previous: Optional[_Span] = None
    heading: Optional[str] = None

    for para in _split_spans(text, _PARAGRAPH_BREAK, offset):
        match = _HEADING.match(para.text)
        if match and "\n" not in para.text:
            heading = match.group(1).strip()
            # a heading opens a new chunk
            if current is not None:
                drafts.append(current)
                current = None

        if estimate_tokens(para.text) > cfg.max_tokens:
            if current is not None:
                drafts.append(current)
                current = None
            drafts.extend(_sentence_drafts(para, heading, cfg))
            previous = None
            continue

        if current is None:
            current = _Draft(units=[para], sep=PARAGRAPH_SEP, type=BoundaryType.PARAGRAPH, heading=heading)
        elif estimate_tokens(current.content + PARAGRAPH_SEP + para.text) <= cfg.max_tokens:
            current.units.append(para)
        else:
            drafts.append(current)
            current = _seeded(para, previous.text if previous else "", PARAGRAPH_SEP, BoundaryType.PARAGRAPH, heading, cfg)
        previous = para

    if current is not None:
        drafts.append(current)
    return drafts


def _window_drafts(text: str, cfg: ChunkConfig, offset: int) -> List[_Draft]:
    words = [_Span(offset + m.start(), offset + m.end(), m.group()) for m in _WORD.finditer(text)]
    per_chunk = max(1, int(cfg.max_tokens * WORDS_PER_TOKEN))
    overlap = min(int(cfg.overlap_tokens * WORDS_PER_TOKEN), per_chunk - 1)
    step = per_chunk - overlap

    drafts: List[_Draft] = []
    for i in range(0, len(words), step):
        shared = words[i:i + overlap] if drafts else []
        fresh = words[i + len(shared):i + per_chunk]
        if not fresh:
            break
        drafts.append(
            _Draft(
                units=fresh,
                sep=SENTENCE_SEP,
                type=BoundaryType.ARBITRARY,
                overlap=" ".join(w.text for w in shared),
            )
        )
        if i + per_chunk >= len(words):
            break
    return drafts


def _fold_short_tail(drafts: List[_Draft], cfg: ChunkConfig) -> List[_Draft]:
    """Fold a short trailing fragment into its predecessor when it fits.

    Paragraph and sentence merges must stay within max_tokens; word windows
    carry no token bound. A fragment that cannot be folded is kept.
    """
    if len(drafts) < 2 or len(drafts[-1].body) >= cfg.min_chunk_size:
        return drafts
    prev, last = drafts[-2], drafts[-1]
    if prev.type != last.type:
        return drafts
    merged = _Draft(
        units=prev.units + last.units,
        sep=prev.sep,
        type=prev.type,
        overlap=prev.overlap,
        heading=prev.heading,
        page_number=prev.page_number,
    )
    if merged.type != BoundaryType.ARBITRARY and estimate_tokens(merged.content) > cfg.max_tokens:
        return drafts
    return drafts[:-2] + [merged]


def _draft_chunks(text: str, cfg: ChunkConfig, offset: int = 0) -> List[_Draft]:
    if not text or not text.strip():
        return []
    if cfg.respect_boundaries:
        drafts = _paragraph_drafts(text, cfg, offset)
    else:
        drafts = _window_drafts(text, cfg, offset)
    return _fold_short_tail(drafts, cfg)


def create_chunks(text: str, config: Optional[ChunkConfig] = None) -> List[DocumentChunk]:
    """Split text into ordered chunks with gap-free indices starting at 0.

    Args:
        text: Raw document text.
        config: Chunk sizing; defaults to ChunkConfig().

    Returns:
        List[DocumentChunk]: Empty for empty or whitespace-only input.
    """
    cfg = config or ChunkConfig()
    return [d.to_chunk(i) for i, d in enumerate(_draft_chunks(text, cfg))]


def split_pages(content: str) -> List[tuple]:
    """Split PDF text on page markers.

    Returns:
        List of (page_number, raw_page_text, offset). Empty when no marker is found.
    """
    pages = []
    last_index = 0
    page_number = 1
    found = False
    for m in _PAGE_MARKER.finditer(content):
        found = True
        if m.start() != last_index:
            pages.append((page_number, content[last_index:m.start()], last_index))
        page_number = int(m.group(1))
        last_index = m.end()
    if not found:
        return []
    if last_index < len(content):
        pages.append((page_number, content[last_index:], last_index))
    return pages


class Segmenter(Protocol):
    def segment(self, text: str, config: ChunkConfig) -> List[DocumentChunk]:
        ...


class PlainSegmenter:
    """Paragraph/sentence (or word window) segmentation over the whole text."""

    def segment(self, text: str, config: ChunkConfig) -> List[DocumentChunk]:
        return create_chunks(text, config)


class PageAwareSegmenter:
    """Segments each PDF page independently and stamps page numbers."""

    def segment(self, text: str, config: ChunkConfig) -> List[DocumentChunk]:
        pages = split_pages(text)
        if not pages:
            return create_chunks(text, config)

        drafts: List[_Draft] = []
        for page_number, page_text, offset in pages:
            for draft in _draft_chunks(page_text, config, offset):
                draft.page_number = page_number
                drafts.append(draft)
        return [d.to_chunk(i) for i, d in enumerate(drafts)]


class NullSegmenter:
    """Images carry no chunkable text."""

    def segment(self, text: str, config: ChunkConfig) -> List[DocumentChunk]:
        return []


SEGMENTERS: Dict[ContentType, Segmenter] = {
    ContentType.TEXT: PlainSegmenter(),
    ContentType.URL: PlainSegmenter(),
    ContentType.NOTE: PlainSegmenter(),
    ContentType.PDF: PageAwareSegmenter(),
    ContentType.IMAGE: NullSegmenter(),
}


def _content_type(value: Union[ContentType, str]) -> ContentType:
    try:
        return ContentType(value)
    except ValueError:
        raise ValidationError(f"Unknown content type: {value}", field="content_type") from None


def chunk_document(
    content: str,
    content_type: Union[ContentType, str],
    config: Optional[ChunkConfig] = None,
) -> List[DocumentChunk]:
    """Chunk a document using the segmenter registered for its content type.

    Args:
        content: Document text.
        content_type: One of ContentType (or its string value).
        config: Chunk sizing; defaults to get_chunk_config(len(content)).
    """
    segmenter = SEGMENTERS[_content_type(content_type)]
    return segmenter.segment(content, config or get_chunk_config(len(content)))


def get_chunk_config(content_length: int) -> ChunkConfig:
    """Pick chunk sizing from total content length.

    Short content (<1000 chars) is effectively left whole.
    """
    if content_length < 1000:
        return ChunkConfig(max_tokens=1000, overlap_tokens=0, min_chunk_size=0)
    if content_length < 5000:
        return ChunkConfig(max_tokens=500, overlap_tokens=50, min_chunk_size=200)
    return ChunkConfig(max_tokens=400, overlap_tokens=50, min_chunk_size=150)


def should_chunk(content_type: Union[ContentType, str], content_length: int) -> bool:
    """Whether a source of this type and length is worth chunking.

    Content must be strictly longer than the type's threshold; images never chunk.
    """
    threshold = CHUNK_THRESHOLDS.get(_content_type(content_type))
    return threshold is not None and content_length > threshold
