"""Pytest configuration and fixtures for the codebase index tests."""

from pathlib import Path

import pytest

from review_rag.config import ENV_FIELDS, RagConfig
from review_rag.indexing.embeddings import EmbeddingService


def write_file(root: Path, relative_path: str, content: str) -> Path:
    """Create a file (and parent directories) under root."""
    path = root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def python_source(n_lines: int, topic: str = "payment") -> str:
    """Plausible Python source with n_lines lines about a topic."""
    lines = []
    for i in range(n_lines):
        lines.append(f"    {topic}_value_{i} = compute_{topic}(order, amount_{i})  # step {i}")
    return "\n".join(lines)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every REVIEW_RAG_* / provider variable for the test's duration.

    Values set later (e.g. by load_dotenv) are rolled back at teardown.
    """
    for name in list(ENV_FIELDS) + ["REVIEW_RAG_LOG_LEVEL"]:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def make_config(tmp_path):
    """Factory for RagConfig pointing its index at a temp directory."""
    def _factory(**overrides):
        values = dict(
            enabled=True,
            include_glob="**/*.py",
            exclude_glob="**/node_modules/**,**/build/**",
            storage_dir=str(tmp_path / "index"),
            similarity_threshold=0.1,
        )
        values.update(overrides)
        return RagConfig(**values)
    return _factory


@pytest.fixture
def embedding_service():
    """Embedding service pointed at an endpoint nothing listens on."""
    return EmbeddingService(endpoint="http://127.0.0.1:9/api/generate", timeout=0.5)
