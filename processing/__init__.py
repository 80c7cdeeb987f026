"""
Processing Module
Chunking and embedding
"""
from .chunker import (
    TextChunker,
    ChunkingStrategy,
    DocumentChunk,
    chunk_text,
)
from .embedder import (
    BaseEmbedder,
    SentenceTransformerEmbedder,
    OpenAIEmbedder,
    cosine_similarity,
    get_embedder,
)

__all__ = [
    # Chunker
    "TextChunker",
    "ChunkingStrategy",
    "DocumentChunk",
    "chunk_text",
    # Embedder
    "BaseEmbedder",
    "SentenceTransformerEmbedder",
    "OpenAIEmbedder",
    "cosine_similarity",
    "get_embedder",
]
