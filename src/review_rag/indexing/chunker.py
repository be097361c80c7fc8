"""
Line-Aligned Code Chunking

This module splits source files into overlapping, line-aligned chunks that
serve as the atomic unit of indexing and retrieval. Chunk boundaries and ids
are a pure function of the input, so re-chunking unchanged text reproduces
the same chunks.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class Chunk:
    """A contiguous slice of one file's text."""
    id: str
    file_path: str
    start_line: int  # 1-indexed, inclusive
    end_line: int    # 1-indexed, inclusive
    content: str
    embedding: List[float] = field(default_factory=list)
    indexed_at: str = ""

    @classmethod
    def create(cls, content: str, file_path: str, start_line: int, end_line: int) -> 'Chunk':
        """Create a chunk with an id derived from its location."""
        return cls(
            id=make_chunk_id(file_path, start_line, end_line),
            file_path=file_path,
            start_line=start_line,
            end_line=end_line,
            content=content,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the index document's field names."""
        return {
            "id": self.id,
            "filePath": self.file_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "content": self.content,
            "embedding": list(self.embedding),
            "indexedAt": self.indexed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Chunk':
        """Inverse of to_dict. Raises KeyError/TypeError/ValueError on bad shape."""
        start_line = int(data["startLine"])
        end_line = int(data["endLine"])
        if start_line < 1 or end_line < start_line:
            raise ValueError(f"invalid line range {start_line}-{end_line}")

        embedding = data.get("embedding") or []
        if not isinstance(embedding, list):
            raise TypeError("embedding must be a list")

        return cls(
            id=str(data["id"]),
            file_path=str(data["filePath"]),
            start_line=start_line,
            end_line=end_line,
            content=str(data["content"]),
            embedding=[float(x) for x in embedding],
            indexed_at=str(data.get("indexedAt", "")),
        )


def make_chunk_id(file_path: str, start_line: int, end_line: int) -> str:
    """Stable id for a (file, line range) location."""
    return hashlib.sha256(
        f"{file_path}:{start_line}:{end_line}".encode("utf-8")
    ).hexdigest()[:16]


class CodeChunker:
    """Greedy line-aligned chunker with character-budget overlap."""

    def __init__(self, chunk_size: int = 1500, chunk_overlap: int = 150):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0:
            raise ValueError("chunk_overlap must not be negative")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def chunk_text(self, text: str, file_path: str) -> List[Chunk]:
        """
        Split text into overlapping chunks.

        Lines are accumulated until the chunk reaches chunk_size characters.
        The next chunk starts chunk_overlap characters' worth of lines (at the
        closed chunk's average line length) before the previous end, but
        always strictly after the previous start.

        A whitespace-only run that ends up in a chunk of its own is dropped,
        so when the text ends in such a run the last chunk's end_line is less
        than the file's line count.

        Args:
            text: Full file content
            file_path: Workspace-relative path recorded on each chunk

        Returns:
            Chunks in file order, without embeddings
        """
        lines = text.split('\n')
        total = len(lines)
        chunks: List[Chunk] = []

        start = 0  # 0-indexed
        while start < total:
            end = start
            length = 0
            while end < total and length < self.chunk_size:
                # +1 for the joining newline
                length += len(lines[end]) + (1 if end > start else 0)
                end += 1

            content = '\n'.join(lines[start:end])

            if not content.strip():
                start = end
                continue

            chunks.append(Chunk.create(content, file_path, start + 1, end))

            if end >= total:
                break

            line_count = end - start
            average_line_length = max(len(content) / line_count, 1.0)
            overlap_lines = int(self.chunk_overlap // average_line_length)
            start = max(start + 1, end - overlap_lines)

        return chunks


def chunk_text(text: str, file_path: str, chunk_size: int, chunk_overlap: int) -> List[Chunk]:
    """Module-level shortcut for CodeChunker(chunk_size, chunk_overlap).chunk_text()."""
    return CodeChunker(chunk_size, chunk_overlap).chunk_text(text, file_path)
