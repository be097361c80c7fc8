"""
Codebase Indexing System

This package implements the embedded semantic-search index used to find code
related to a change under review.

Core Components:
- CodeChunker: Line-aligned overlapping chunking
- EmbeddingService: Network embeddings with a deterministic local fallback
- ChunkStore: JSON-persisted chunk and vector storage
- CodebaseIndexer: Keeps the store consistent with the workspace
- ContextRetriever: Similarity search and review-context assembly
"""

from .chunker import CodeChunker, Chunk, chunk_text
from .embeddings import (
    EmbeddingService,
    EmbeddingResult,
    EmbeddingFailure,
    generate_fallback_embedding,
    cosine_similarity,
)
from .storage import ChunkStore, StorageStats
from .indexer import CodebaseIndexer, SmartIndexer, IndexingStats
from .retriever import ContextRetriever, RetrievalResult, RagContext, build_context_section

__all__ = [
    "CodeChunker",
    "Chunk",
    "chunk_text",
    "EmbeddingService",
    "EmbeddingResult",
    "EmbeddingFailure",
    "generate_fallback_embedding",
    "cosine_similarity",
    "ChunkStore",
    "StorageStats",
    "CodebaseIndexer",
    "SmartIndexer",
    "IndexingStats",
    "ContextRetriever",
    "RetrievalResult",
    "RagContext",
    "build_context_section",
]
