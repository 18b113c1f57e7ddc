"""Document-side data models: source documents, segments and chunks.

A :class:`Document` is the immutable input to ingestion.  The structural
segmenter turns its text into :class:`Segment` objects, and the chunker
packs segments into :class:`Chunk` objects -- the unit of embedding and
retrieval.  All models are frozen: reprocessing a document produces a new
chunk set rather than mutating the old one.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChunkType(str, Enum):
    """Content classification assigned to each chunk at flush time."""

    HEADER = "header"
    PARAGRAPH = "paragraph"
    LIST = "list"
    CODE = "code"
    TOC = "toc"
    REFERENCES = "references"


class ChunkingStrategy(str, Enum):
    """Closed set of chunking strategies."""

    SEMANTIC = "semantic"
    LINE_BASED = "line-based"
    SLIDING_WINDOW = "sliding-window"


# ---------------------------------------------------------------------------
# Document: a plain-text source ready for chunking.
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """A long-form text document.

    Layout extraction (PDF, DOCX, ...) happens upstream; by the time a
    document reaches the chunker it is plain text plus an optional page
    count used for page-range estimation.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="Stable identifier; reprocessing reuses it.")
    text: str = Field(description="Full plain-text content of the document.")
    total_pages: int | None = Field(
        default=None, ge=1, description="Page count reported by layout extraction."
    )
    title: str | None = Field(default=None, description="Human-readable title.")
    author: str | None = Field(default=None, description="Author, if known.")
    filename: str | None = Field(default=None, description="Original file name, if any.")


class Segment(BaseModel):
    """A paragraph-level span produced by the structural segmenter."""

    model_config = ConfigDict(frozen=True)

    text: str
    start: int = Field(ge=0, description="Offset of the first character in the source text.")
    end: int = Field(ge=0, description="Offset one past the last character.")
    is_header: bool = False
    header_level: int = Field(default=0, ge=0, le=3)


# ---------------------------------------------------------------------------
# Chunk: the fundamental unit of the retrieval index.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A bounded contiguous span of a document plus derived metadata.

    ``start_char``/``end_char`` cover the chunk's *own* (non-overlapping)
    region of the source text; ``text`` additionally begins with the
    ``overlap_with_previous`` characters copied from the previous chunk.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(description="Key used in the vector store, '<doc>-chunk-<n>'.")
    document_id: str
    index: int = Field(ge=0, description="Sequence number within the document.")
    start_char: int = Field(ge=0)
    end_char: int = Field(ge=0)
    text: str
    overlap_with_previous: int = Field(default=0, ge=0)
    overlap_with_next: int = Field(default=0, ge=0)
    chunk_type: ChunkType = ChunkType.PARAGRAPH
    section_number: str | None = None
    section_title: str | None = None
    page_start: int | None = None
    page_end: int | None = None
    sentence_count: int = Field(default=0, ge=0)
    word_count: int = Field(default=0, ge=0)
    has_code_block: bool = False
    has_list: bool = False
    has_table: bool = False
    is_header: bool = Field(default=False, description="Chunk opens at a detected header.")
    header_level: int = Field(default=0, ge=0, le=3)
    summary: str | None = Field(default=None, description="First lines of the chunk body.")
    topics: list[str] = Field(default_factory=list, description="Most frequent content words.")

    @property
    def body(self) -> str:
        """The chunk text without its leading overlap seed."""
        return self.text[self.overlap_with_previous :]

    def to_metadata(self) -> dict[str, str | int | float | bool]:
        """Flatten the chunk into a vector-store metadata dict.

        ``None`` values are dropped because several stores (ChromaDB
        included) reject them.
        """
        raw = {
            "document_id": self.document_id,
            "chunk_index": self.index,
            "content": self.text,
            "start_char": self.start_char,
            "end_char": self.end_char,
            "chunk_type": self.chunk_type.value,
            "section_number": self.section_number,
            "section_title": self.section_title,
            "page_start": self.page_start,
            "page_end": self.page_end,
            "sentence_count": self.sentence_count,
            "word_count": self.word_count,
            "has_code_block": self.has_code_block,
            "has_list": self.has_list,
            "has_table": self.has_table,
            "overlap_with_previous": self.overlap_with_previous,
            "overlap_with_next": self.overlap_with_next,
            "summary": self.summary,
            # Stores only accept scalar metadata.
            "topics": ", ".join(self.topics) or None,
        }
        return {k: v for k, v in raw.items() if v is not None}
