"""
Main Codebase Indexer

This module keeps the chunk store consistent with the workspace:
whole-workspace indexing, single-file updates, and hash-based incremental
refreshes. One bad file never stops a run; it is logged and counted as
skipped.
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from ..config import RagConfig
from ..workspace import FileTooLargeError, Workspace
from .chunker import Chunk, CodeChunker
from .embeddings import EmbeddingService
from .storage import ChunkStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class IndexingStats:
    """Statistics from an indexing run."""
    files_indexed: int = 0
    chunks_created: int = 0
    files_skipped: int = 0
    duration_ms: int = 0
    files_removed: int = 0
    cancelled: bool = False


class CodebaseIndexer:
    """Indexes workspace files into a ChunkStore."""

    def __init__(self,
                 workspace: Workspace,
                 store: ChunkStore,
                 embedding_service: EmbeddingService,
                 config: RagConfig,
                 use_network: bool = True):
        self.workspace = workspace
        self.store = store
        self.embedding_service = embedding_service
        self.config = config
        self.use_network = use_network
        self.chunker = CodeChunker(config.chunk_size, config.chunk_overlap)

    def index_file(self, file_path: Union[str, Path]) -> int:
        """
        Index (or re-index) a single file.

        The file's previous chunks are always dropped. Files that cannot be
        read, exceed the size ceiling or contain only whitespace end up with
        no chunks.

        Returns:
            Number of chunks created (0 if the file was skipped)
        """
        relative_path = self.workspace.relative_path(file_path)

        try:
            text = self.workspace.read_text(relative_path, self.config.max_file_bytes)
        except FileTooLargeError as e:
            logger.debug("Skipping oversize file %s: %s", relative_path, e)
            self.store.remove_file(relative_path)
            return 0
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", relative_path, e)
            self.store.remove_file(relative_path)
            return 0

        chunks = self._embed_chunks(self.chunker.chunk_text(text, relative_path))
        self.store.replace_file(relative_path, chunks)
        return len(chunks)

    def _embed_chunks(self, chunks: List[Chunk]) -> List[Chunk]:
        """Attach embeddings to freshly chunked text, off-store."""
        now = datetime.now(timezone.utc).isoformat()
        for chunk in chunks:
            result = self.embedding_service.embed(chunk.content, use_network=self.use_network)
            chunk.embedding = result.embedding
            chunk.indexed_at = now
        return chunks

    def discover_files(self) -> List[Path]:
        """Workspace files matching the configured globs, capped at max_files."""
        return self.workspace.find_files(
            self.config.include_patterns(),
            self.config.exclude_patterns(),
            self.config.max_files
        )

    def index_workspace(self,
                        cancel_event: Optional[threading.Event] = None,
                        progress_callback: Optional[ProgressCallback] = None) -> IndexingStats:
        """
        Index every matching workspace file, one file at a time.

        Args:
            cancel_event: Checked before each file; when set the run stops
                and partial stats are returned
            progress_callback: Called as (files_done, files_total, path)
                before each file

        Returns:
            IndexingStats for the run
        """
        start_time = time.time()
        stats = IndexingStats()

        files = self.discover_files()
        logger.info("Indexing %d workspace files under %s", len(files), self.workspace.root)

        for done, file_path in enumerate(files):
            if cancel_event is not None and cancel_event.is_set():
                stats.cancelled = True
                logger.info("Indexing cancelled after %d of %d files", done, len(files))
                break

            relative_path = self.workspace.relative_path(file_path)
            if progress_callback:
                progress_callback(done, len(files), relative_path)

            try:
                created = self.index_file(file_path)
            except Exception as e:
                stats.files_skipped += 1
                logger.warning("Skipped %s: %s", relative_path, e, exc_info=True)
                continue

            if created > 0:
                stats.files_indexed += 1
                stats.chunks_created += created
            else:
                stats.files_skipped += 1

        self.store.flush()

        stats.duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Index complete: %d files, %d chunks, %d skipped (%.1fs)",
            stats.files_indexed, stats.chunks_created, stats.files_skipped,
            stats.duration_ms / 1000
        )
        return stats

    def update_file(self, file_path: Union[str, Path]) -> int:
        """
        Bring one file's chunks up to date and persist.

        A file that no longer exists has its chunks removed.

        Returns:
            Number of chunks now stored for the file
        """
        relative_path = self.workspace.relative_path(file_path)

        if not self.workspace.absolute_path(relative_path).is_file():
            if self.store.remove_file(relative_path):
                logger.info("Removed chunks for deleted file %s", relative_path)
            self.store.flush()
            return 0

        created = self.index_file(relative_path)
        self.store.flush()
        logger.debug("Updated %d chunks for %s", created, relative_path)
        return created


class SmartIndexer(CodebaseIndexer):
    """Indexer that only re-processes files whose content changed."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._file_hashes: Dict[str, str] = {}
        self._last_index_time: float = 0

    def _hash_files(self, files: List[Path]) -> Dict[str, str]:
        hashes = {}
        for file_path in files:
            try:
                with open(file_path, 'rb') as f:
                    digest = hashlib.md5(f.read()).hexdigest()
            except OSError as e:
                logger.debug("Could not hash %s: %s", file_path, e)
                continue
            hashes[self.workspace.relative_path(file_path)] = digest
        return hashes

    def smart_update(self) -> IndexingStats:
        """Re-index changed files and drop chunks of files that disappeared."""
        start_time = time.time()
        stats = IndexingStats()

        current_hashes = self._hash_files(self.discover_files())

        changed_files = [
            path for path, digest in current_hashes.items()
            if self._file_hashes.get(path) != digest
        ]
        deleted_files = [
            path for path in self.store.get_indexed_files()
            if path not in current_hashes
        ]

        for path in deleted_files:
            if self.store.remove_file(path):
                stats.files_removed += 1

        for path in changed_files:
            try:
                created = self.index_file(path)
            except Exception as e:
                stats.files_skipped += 1
                current_hashes.pop(path, None)
                logger.warning("Skipped %s: %s", path, e, exc_info=True)
                continue

            if created > 0:
                stats.files_indexed += 1
                stats.chunks_created += created
            else:
                stats.files_skipped += 1

        self.store.flush()

        self._file_hashes = current_hashes
        self._last_index_time = time.time()
        stats.duration_ms = int((self._last_index_time - start_time) * 1000)

        if changed_files or deleted_files:
            logger.info("Smart update: %d changed, %d deleted", len(changed_files), len(deleted_files))
        return stats

    def watch_and_update(self,
                         poll_interval: float = 10.0,
                         stop_event: Optional[threading.Event] = None,
                         on_update: Optional[Callable[[IndexingStats], None]] = None):
        """Poll for changes until stop_event is set."""
        stop_event = stop_event or threading.Event()
        logger.info("Watching %s (polling every %ss)", self.workspace.root, poll_interval)

        while not stop_event.is_set():
            stats = self.smart_update()
            if on_update:
                on_update(stats)
            stop_event.wait(poll_interval)
