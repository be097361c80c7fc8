"""
Context Retrieval System

This module scores stored chunks against a query by cosine similarity and
assembles the related-code context handed to the review prompt.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from ..config import RagConfig
from .chunker import Chunk
from .embeddings import EmbeddingService, cosine_similarity
from .storage import ChunkStore

logger = logging.getLogger(__name__)


@dataclass
class RetrievalResult:
    """A stored chunk and its similarity to the query."""
    chunk: Chunk
    score: float


@dataclass
class RagContext:
    """Related code retrieved for a diff."""
    results: List[RetrievalResult] = field(default_factory=list)
    summary: str = ""


def _normalize_path(path: str) -> str:
    path = path.replace('\\', '/')
    while path.startswith('./'):
        path = path[2:]
    return path


def is_same_file(indexed_path: str, changed_path: str) -> bool:
    """True if the paths are equal or one ends with the other at a '/' boundary."""
    a = _normalize_path(indexed_path)
    b = _normalize_path(changed_path)
    if not a or not b:
        return False
    return a == b or a.endswith('/' + b) or b.endswith('/' + a)


class ContextRetriever:
    """Retrieves and assembles relevant context for review prompts."""

    def __init__(self,
                 store: ChunkStore,
                 embedding_service: EmbeddingService,
                 config: RagConfig,
                 use_network: bool = True):
        self.store = store
        self.embedding_service = embedding_service
        self.config = config
        self.use_network = use_network

    def retrieve(self, query: str) -> List[RetrievalResult]:
        """
        Top-K chunks most similar to the query.

        Chunks without an embedding are ignored. Only scores at or above
        similarity_threshold are kept; at most max_results are returned,
        highest score first.
        """
        chunks = self.store.get_all_chunks()
        if not chunks:
            return []

        query_embedding = self.embedding_service.embed(query, use_network=self.use_network).embedding

        scored: List[RetrievalResult] = []
        for chunk in chunks:
            if not chunk.embedding:
                continue
            score = cosine_similarity(query_embedding, chunk.embedding)
            if score >= self.config.similarity_threshold:
                scored.append(RetrievalResult(chunk=chunk, score=score))

        scored.sort(key=lambda r: r.score, reverse=True)
        results = scored[:self.config.max_results]

        logger.debug("Scored %d chunks, %d above %.2f, returning %d",
                     len(chunks), len(scored), self.config.similarity_threshold, len(results))
        return results

    def get_context(self, diff: str, changed_file_paths: Sequence[str]) -> RagContext:
        """
        Related code for a diff, excluding the files the diff touches.

        Only the first query_chars characters of the diff are used as the
        query.
        """
        query = diff[:self.config.query_chars]
        results = self.retrieve(query)

        filtered = [
            r for r in results
            if not any(is_same_file(r.chunk.file_path, p) for p in changed_file_paths)
        ]

        if filtered:
            summary = f"Retrieved {len(filtered)} related code snippet(s) from the codebase index."
        else:
            summary = "No similar code found in the index."

        return RagContext(results=filtered, summary=summary)


def build_context_section(results: List[RetrievalResult]) -> str:
    """Format retrieved snippets as a Markdown section for the review prompt."""
    if not results:
        return ""

    sections = []
    for idx, result in enumerate(results, 1):
        chunk = result.chunk
        pct = round(result.score * 100)
        sections.append('\n'.join([
            f"#### Relevant snippet {idx} - `{chunk.file_path}` "
            f"(lines {chunk.start_line}-{chunk.end_line}, similarity {pct}%)",
            "```",
            chunk.content,
            "```",
        ]))

    return '\n'.join([
        "\n\n---",
        "## Related Code from Codebase (RAG context)",
        "The following existing code snippets were retrieved as semantically similar "
        "to the diff. Use them as additional context when reviewing:",
        "",
        *sections,
        "---",
    ])
