"""
RAG Session

One RagSession per workspace owns the chunk store and the cached answer to
"is the network embedding model reachable?". Both are LazyValues, so nothing
touches the disk or the network until first needed.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence, Union

from .config import RagConfig
from .indexing.embeddings import EmbeddingService
from .indexing.indexer import CodebaseIndexer, IndexingStats, ProgressCallback, SmartIndexer
from .indexing.retriever import ContextRetriever, RagContext
from .indexing.storage import ChunkStore
from .lazy import LazyValue
from .workspace import Workspace

logger = logging.getLogger(__name__)


class RagSession:
    """Entry point used by the host to index the workspace and fetch review context."""

    def __init__(self,
                 workspace_root: Union[str, Path],
                 config: RagConfig,
                 embedding_service: Optional[EmbeddingService] = None,
                 use_network: Optional[bool] = None):
        self.workspace = Workspace(workspace_root)
        self.config = config
        self.embedding_service = embedding_service or EmbeddingService(
            model=config.embedding_model,
            endpoint=config.endpoint,
            provider=config.embedding_provider,
            api_key=config.api_key,
            timeout=config.request_timeout,
        )

        storage_dir = Path(config.storage_dir)
        if not storage_dir.is_absolute():
            storage_dir = self.workspace.root / storage_dir
        self.storage_dir = storage_dir

        self._store: LazyValue[ChunkStore] = LazyValue(self._open_store, name="chunk store")
        self._network_available: LazyValue[bool] = LazyValue(
            self.embedding_service.is_available, name="embedding availability"
        )
        if use_network is not None:
            self._network_available.set(use_network)

        self._indexer: Optional[SmartIndexer] = None
        self._indexer_lock = threading.Lock()

    def _open_store(self) -> ChunkStore:
        store = ChunkStore(str(self.storage_dir))
        logger.info("Vector store loaded: %d chunks", store.chunk_count)
        return store

    @property
    def store(self) -> ChunkStore:
        return self._store.get()

    def use_network_embeddings(self) -> bool:
        """Whether to try the network model; probed once per session."""
        return bool(self._network_available.get())

    def invalidate_availability(self):
        """Re-probe the embedding model on next use."""
        self._network_available.invalidate()
        with self._indexer_lock:
            self._indexer = None

    def indexer(self) -> SmartIndexer:
        """The session's indexer, built once and shared by every thread."""
        with self._indexer_lock:
            if self._indexer is None:
                self._indexer = SmartIndexer(
                    self.workspace,
                    self.store,
                    self.embedding_service,
                    self.config,
                    use_network=self.use_network_embeddings(),
                )
            return self._indexer

    def retriever(self) -> ContextRetriever:
        return ContextRetriever(
            self.store,
            self.embedding_service,
            self.config,
            use_network=self.use_network_embeddings(),
        )

    def index_workspace(self,
                        cancel_event: Optional[threading.Event] = None,
                        progress_callback: Optional[ProgressCallback] = None) -> IndexingStats:
        return self.indexer().index_workspace(cancel_event, progress_callback)

    def start_background_indexing(self,
                                  cancel_event: Optional[threading.Event] = None
                                  ) -> Optional[threading.Thread]:
        """Index the workspace on a daemon thread if enabled with index_on_startup."""
        if not (self.config.enabled and self.config.index_on_startup):
            return None

        thread = threading.Thread(
            target=self.index_workspace,
            args=(cancel_event,),
            name="review-rag-startup-index",
            daemon=True,
        )
        thread.start()
        return thread

    def index_files(self, paths: Iterable[Union[str, Path]]) -> Dict[str, int]:
        """Update the given files (re-index, or drop if deleted). Returns chunks per file."""
        indexer: CodebaseIndexer = self.indexer()
        return {
            self.workspace.relative_path(p): indexer.update_file(p)
            for p in paths
        }

    def clear_index(self):
        self.store.clear()
        logger.info("Index cleared")

    def get_context(self, diff: str, changed_files: Sequence[str]) -> RagContext:
        """
        Related code for a diff, or an empty context.

        Retrieval is skipped when RAG is disabled or the index is empty.
        Errors are logged and never reach the caller.
        """
        if not self.config.enabled:
            return RagContext(summary="RAG is disabled.")

        try:
            if self.store.chunk_count == 0:
                return RagContext(summary="No similar code found in the index.")
            context = self.retriever().get_context(diff, changed_files)
        except Exception as e:
            logger.error("RAG retrieval failed: %s", e, exc_info=True)
            return RagContext(summary="No similar code found in the index.")

        logger.info(context.summary)
        return context

    def status(self) -> Dict[str, object]:
        stats = self.store.get_stats()
        return {
            "workspace": str(self.workspace.root),
            "index_path": str(self.store.store_path),
            "enabled": self.config.enabled,
            "embedding_model": self.config.embedding_model,
            "total_chunks": stats.total_chunks,
            "total_files": stats.total_files,
            "embedding_dimensions": stats.embedding_dimensions,
            "index_size_mb": stats.index_size_mb,
            "file_types": stats.file_types,
            "updated_at": stats.updated_at,
        }
