"""
Vector Storage System for Code Chunks

This module keeps indexed chunks and their embeddings in memory, keyed by
chunk id, and persists them as a single JSON document:

    {"version": 1, "updatedAt": "...", "chunkCount": N, "chunks": {id: {...}}}

A missing, unreadable, malformed or version-mismatched document is treated
as an empty index. Only flush() and clear() touch the disk.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .chunker import Chunk

logger = logging.getLogger(__name__)

STORE_FILE = "rag-index.json"
STORE_VERSION = 1


@dataclass
class StorageStats:
    """Statistics about the vector storage."""
    total_chunks: int
    total_files: int
    embedding_dimensions: List[int]
    index_size_mb: float
    file_types: Dict[str, int]
    updated_at: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChunkStore:
    """Persisted, keyed collection of chunks with embeddings."""

    def __init__(self, storage_dir: str, file_name: str = STORE_FILE):
        self.storage_dir = Path(storage_dir)
        self.store_path = self.storage_dir / file_name

        self._chunks: Dict[str, Chunk] = {}
        self._updated_at = _now()
        self._dirty = False

        self._load()

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def updated_at(self) -> str:
        return self._updated_at

    @property
    def dirty(self) -> bool:
        return self._dirty

    def upsert_chunk(self, chunk: Chunk):
        """Insert or replace a chunk by id."""
        self._chunks[chunk.id] = chunk
        self._dirty = True

    def remove_file(self, file_path: str) -> bool:
        """Remove all chunks belonging to a file. Returns True if any were removed."""
        remaining = {
            chunk_id: chunk for chunk_id, chunk in self._chunks.items()
            if chunk.file_path != file_path
        }
        if len(remaining) == len(self._chunks):
            return False

        self._chunks = remaining
        self._dirty = True
        return True

    def replace_file(self, file_path: str, chunks: Iterable[Chunk]) -> int:
        """
        Swap a file's chunk set for a new one in a single step.

        Readers see either the previous chunks for file_path or the new ones,
        never a mix. Chunks whose file_path differs are rejected.
        """
        new_chunks = list(chunks)
        for chunk in new_chunks:
            if chunk.file_path != file_path:
                raise ValueError(
                    f"Chunk {chunk.id} belongs to {chunk.file_path}, not {file_path}"
                )

        replacement = {
            chunk_id: chunk for chunk_id, chunk in self._chunks.items()
            if chunk.file_path != file_path
        }
        replacement.update((chunk.id, chunk) for chunk in new_chunks)

        if new_chunks or len(replacement) != len(self._chunks):
            self._chunks = replacement
            self._dirty = True

        return len(new_chunks)

    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        return self._chunks.get(chunk_id)

    def get_all_chunks(self) -> List[Chunk]:
        return list(self._chunks.values())

    def get_chunks_for_file(self, file_path: str) -> List[Chunk]:
        """Get all chunks for a specific file, in line order."""
        chunks = [c for c in self._chunks.values() if c.file_path == file_path]
        chunks.sort(key=lambda c: c.start_line)
        return chunks

    def get_indexed_files(self) -> List[str]:
        """Unique file paths present in the index, in first-seen order."""
        return list(dict.fromkeys(c.file_path for c in self._chunks.values()))

    def clear(self):
        """Empty the index and persist immediately."""
        logger.info("Clearing index at %s", self.store_path)
        self._chunks = {}
        self._dirty = True
        self.flush()

    def flush(self) -> bool:
        """
        Write the index document if anything changed since the last write.

        Write errors are logged and leave the store dirty so a later flush
        can retry. Returns True when the document on disk is current.
        """
        if not self._dirty:
            return True

        updated_at = _now()
        document = self._to_document(updated_at)

        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.storage_dir), prefix=".rag-index-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(document, f)
                os.replace(tmp_path, self.store_path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            logger.warning("Failed to write index %s: %s", self.store_path, e)
            return False

        self._updated_at = updated_at
        self._dirty = False
        logger.debug("Flushed %d chunks to %s", len(self._chunks), self.store_path)
        return True

    def get_stats(self) -> StorageStats:
        """Get storage statistics."""
        file_types: Dict[str, int] = {}
        dimensions = set()

        for chunk in self._chunks.values():
            file_ext = Path(chunk.file_path).suffix.lower() or "(none)"
            file_types[file_ext] = file_types.get(file_ext, 0) + 1
            if chunk.embedding:
                dimensions.add(len(chunk.embedding))

        index_size_mb = 0.0
        if self.store_path.exists():
            index_size_mb = self.store_path.stat().st_size / (1024 * 1024)

        return StorageStats(
            total_chunks=len(self._chunks),
            total_files=len(self.get_indexed_files()),
            embedding_dimensions=sorted(dimensions),
            index_size_mb=index_size_mb,
            file_types=file_types,
            updated_at=self._updated_at,
        )

    def _to_document(self, updated_at: str) -> Dict[str, Any]:
        return {
            "version": STORE_VERSION,
            "updatedAt": updated_at,
            "chunkCount": len(self._chunks),
            "chunks": {chunk_id: chunk.to_dict() for chunk_id, chunk in self._chunks.items()},
        }

    def _load(self):
        """Load the index document, starting empty if it is absent or unusable."""
        if not self.store_path.exists():
            logger.debug("No index at %s, starting empty", self.store_path)
            return

        try:
            with open(self.store_path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Index %s unreadable (%s), starting empty", self.store_path, e)
            return

        chunks = self._parse_document(document)
        if chunks is None:
            return

        self._chunks = chunks
        self._updated_at = str(document.get("updatedAt") or self._updated_at)
        logger.info("Loaded %d chunks from %s", len(chunks), self.store_path)

    def _parse_document(self, document: Any) -> Optional[Dict[str, Chunk]]:
        if not isinstance(document, dict):
            logger.warning("Index %s is not a JSON object, starting empty", self.store_path)
            return None

        version = document.get("version")
        if version != STORE_VERSION:
            logger.warning(
                "Index %s has version %r (expected %d), starting empty",
                self.store_path, version, STORE_VERSION
            )
            return None

        raw_chunks = document.get("chunks")
        if not isinstance(raw_chunks, dict):
            logger.warning("Index %s has no chunk map, starting empty", self.store_path)
            return None

        chunks: Dict[str, Chunk] = {}
        try:
            for chunk_id, raw in raw_chunks.items():
                chunk = Chunk.from_dict(raw)
                chunks[chunk_id] = chunk
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Index %s has a malformed chunk (%s), starting empty",
                           self.store_path, e)
            return None

        return chunks
