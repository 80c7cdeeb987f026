"""
Text Chunker
Splits article bodies into bounded, optionally overlapping segments
"""
from enum import Enum
from typing import List, Optional, Tuple
from dataclasses import dataclass, field
import re
import hashlib

from utils.exceptions import ChunkingError


class ChunkingStrategy(str, Enum):
    """Chunking strategy"""
    FIXED_SIZE = "fixed_size"           # fixed character windows with overlap
    SENTENCE = "sentence"               # pack whole sentences
    PARAGRAPH = "paragraph"             # pack whole paragraphs
    RECURSIVE = "recursive"             # separator hierarchy, falls back to fixed windows
    TOKEN = "token"                     # whitespace-token windows with overlap


@dataclass
class DocumentChunk:
    """A chunk of a source document"""
    id: str
    content: str
    metadata: dict = field(default_factory=dict)
    index: int = 0
    start_char: int = 0
    end_char: int = 0

    @property
    def token_count(self) -> int:
        """Rough token estimate"""
        return len(self.content.split())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "metadata": self.metadata,
            "index": self.index,
            "start_char": self.start_char,
            "end_char": self.end_char,
        }


Span = Tuple[str, int, int]


class TextChunker:
    """
    Text chunker

    chunk_size and chunk_overlap are measured in characters, except for the
    TOKEN strategy where they count whitespace-delimited tokens.
    """

    SENTENCE_ENDINGS = re.compile(r'(?<=[.!?。！？])\s+')
    PARAGRAPH_SEP = re.compile(r'\n\s*\n')
    TOKEN_PATTERN = re.compile(r'\S+')

    def __init__(
        self,
        strategy: ChunkingStrategy = ChunkingStrategy.RECURSIVE,
        chunk_size: int = 800,
        chunk_overlap: int = 80,
        min_chunk_size: int = 5,
        separators: Optional[List[str]] = None,
    ):
        if chunk_size <= 0:
            raise ChunkingError("chunk_size must be positive", details={"chunk_size": chunk_size})
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ChunkingError(
                "chunk_overlap must be in [0, chunk_size)",
                details={"chunk_size": chunk_size, "chunk_overlap": chunk_overlap},
            )
        self.strategy = ChunkingStrategy(strategy)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.min_chunk_size = min_chunk_size
        self.separators = separators or ["\n\n", "\n", ". ", "。", " ", ""]

    def chunk(
        self,
        text: str,
        metadata: Optional[dict] = None,
        doc_id: Optional[str] = None,
    ) -> List[DocumentChunk]:
        """
        Split text into chunks.

        Args:
            text: source text
            metadata: copied onto every chunk
            doc_id: chunk ids are f"{doc_id}_{ordinal}"

        Returns:
            Chunks in document order; chunks shorter than min_chunk_size are dropped
        """
        if not text or not text.strip():
            return []

        metadata = metadata or {}
        doc_id = doc_id or self._generate_doc_id(text)

        if self.strategy == ChunkingStrategy.FIXED_SIZE:
            spans = self._chunk_fixed_size(text)
        elif self.strategy == ChunkingStrategy.SENTENCE:
            spans = self._chunk_by_sentence(text)
        elif self.strategy == ChunkingStrategy.PARAGRAPH:
            spans = self._chunk_by_paragraph(text)
        elif self.strategy == ChunkingStrategy.TOKEN:
            spans = self._chunk_by_tokens(text)
        else:
            spans = self._chunk_recursive(text, self.separators)

        spans = [span for span in spans if len(span[0]) >= self.min_chunk_size]

        return [
            DocumentChunk(
                id=f"{doc_id}_{i}",
                content=content,
                metadata={**metadata, "doc_id": doc_id},
                index=i,
                start_char=start,
                end_char=end,
            )
            for i, (content, start, end) in enumerate(spans)
        ]

    def _chunk_fixed_size(self, text: str, offset: int = 0) -> List[Span]:
        chunks: List[Span] = []
        start = 0

        while start < len(text):
            end = min(start + self.chunk_size, len(text))

            # back off to the last space so words stay whole
            if end < len(text):
                space_pos = text.rfind(' ', start, end)
                if space_pos > start + self.chunk_overlap:
                    end = space_pos

            chunk_text = text[start:end].strip()
            if chunk_text:
                chunks.append((chunk_text, offset + start, offset + end))

            if end >= len(text):
                break
            start = max(end - self.chunk_overlap, start + 1)

        return chunks

    def _chunk_by_sentence(self, text: str) -> List[Span]:
        return self._pack(self.SENTENCE_ENDINGS.split(text), " ", text)

    def _chunk_by_paragraph(self, text: str) -> List[Span]:
        return self._pack(self.PARAGRAPH_SEP.split(text), "\n\n", text)

    def _pack(self, pieces: List[str], joiner: str, text: str) -> List[Span]:
        """Greedily pack pieces up to chunk_size; oversized pieces get fixed windows."""
        chunks: List[Span] = []
        current = ""
        current_start = 0
        cursor = 0

        for raw in pieces:
            piece = raw.strip()
            if not piece:
                continue
            position = text.find(piece, cursor)
            position = cursor if position < 0 else position
            cursor = position + len(piece)

            if len(piece) > self.chunk_size:
                if current:
                    chunks.append((current, current_start, position))
                    current = ""
                chunks.extend(self._chunk_fixed_size(piece, offset=position))
                continue

            if not current:
                current, current_start = piece, position
            elif len(current) + len(joiner) + len(piece) <= self.chunk_size:
                current = f"{current}{joiner}{piece}"
            else:
                chunks.append((current, current_start, position))
                current, current_start = piece, position

        if current:
            chunks.append((current, current_start, cursor))
        return chunks

    def _chunk_by_tokens(self, text: str) -> List[Span]:
        tokens = list(self.TOKEN_PATTERN.finditer(text))
        if not tokens:
            return []

        chunks: List[Span] = []
        step = self.chunk_size - self.chunk_overlap
        for first in range(0, len(tokens), step):
            window = tokens[first : first + self.chunk_size]
            start, end = window[0].start(), window[-1].end()
            chunks.append((text[start:end], start, end))
            if first + self.chunk_size >= len(tokens):
                break
        return chunks

    def _chunk_recursive(
        self,
        text: str,
        separators: List[str],
        start_offset: int = 0,
    ) -> List[Span]:
        """Split on the coarsest separator present, recursing into oversized pieces."""
        if len(text) <= self.chunk_size:
            return [(text.strip(), start_offset, start_offset + len(text))] if text.strip() else []

        separator = next((sep for sep in separators if sep and sep in text), "")
        if not separator:
            return self._chunk_fixed_size(text, offset=start_offset)

        remaining = separators[separators.index(separator) + 1:]
        chunks: List[Span] = []
        current = ""
        current_start = start_offset
        char_pos = 0

        for split in text.split(separator):
            piece = split + separator

            if len(current) + len(piece) <= self.chunk_size:
                if not current:
                    current_start = start_offset + char_pos
                current += piece
            else:
                if current.strip():
                    chunks.append((current.strip(), current_start, start_offset + char_pos))
                current = ""

                if len(piece) > self.chunk_size:
                    chunks.extend(self._chunk_recursive(piece, remaining, start_offset + char_pos))
                else:
                    current = piece
                    current_start = start_offset + char_pos

            char_pos += len(piece)

        if current.strip():
            chunks.append((current.strip(), current_start, start_offset + len(text)))

        return chunks

    def _generate_doc_id(self, text: str) -> str:
        return hashlib.md5(text[:1000].encode()).hexdigest()[:12]


def chunk_text(
    text: str,
    chunk_size: int = 800,
    chunk_overlap: int = 80,
    metadata: Optional[dict] = None,
    strategy: ChunkingStrategy = ChunkingStrategy.RECURSIVE,
) -> List[DocumentChunk]:
    """Convenience wrapper around TextChunker.chunk"""
    chunker = TextChunker(strategy=strategy, chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    return chunker.chunk(text, metadata)
