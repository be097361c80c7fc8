"""
Review RAG

Retrieval of semantically related code snippets to enrich AI code reviews:
- indexing: chunking, embeddings, vector storage, indexer and retriever
- session: per-workspace owner of the index and embedding availability
- main: command-line interface
"""

from .config import RagConfig, load_rag_config
from .session import RagSession

__version__ = "1.0.0"
__all__ = ["RagConfig", "load_rag_config", "RagSession"]
