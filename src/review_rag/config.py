"""
RAG Configuration

Settings for indexing and retrieval, read once per run. Defaults can be
overridden from a .env file and REVIEW_RAG_* environment variables.
"""

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Optional

from dotenv import find_dotenv, load_dotenv

DEFAULT_INCLUDE_GLOB = '**/*.{ts,js,tsx,jsx,py,java,cs,go,rb,php,rs,swift,kt,vue,svelte}'
DEFAULT_EXCLUDE_GLOB = (
    '**/node_modules/**,**/dist/**,**/build/**,**/out/**,**/.next/**,'
    '**/coverage/**,**/*.min.js,**/*.d.ts'
)

EMBEDDING_PROVIDERS = ("ollama", "openai")


@dataclass(frozen=True)
class RagConfig:
    """Configuration for the codebase index and retrieval."""
    enabled: bool = False
    index_on_startup: bool = False
    embedding_model: str = "nomic-embed-text"
    max_results: int = 5
    similarity_threshold: float = 0.65
    include_glob: str = DEFAULT_INCLUDE_GLOB
    exclude_glob: str = DEFAULT_EXCLUDE_GLOB
    chunk_size: int = 1500
    chunk_overlap: int = 150

    endpoint: str = "http://localhost:11434/api/generate"
    embedding_provider: str = "ollama"
    api_key: Optional[str] = None
    request_timeout: float = 30.0
    max_file_bytes: int = 500_000
    max_files: int = 5000
    query_chars: int = 2000
    storage_dir: str = ".chunk_store"

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.chunk_overlap < 0:
            raise ValueError("chunk_overlap must not be negative")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        if self.max_results <= 0:
            raise ValueError("max_results must be positive")
        if self.embedding_provider not in EMBEDDING_PROVIDERS:
            raise ValueError(f"Unknown embedding provider: {self.embedding_provider}")
        if self.max_file_bytes <= 0 or self.max_files <= 0 or self.query_chars <= 0:
            raise ValueError("max_file_bytes, max_files and query_chars must be positive")

    def include_patterns(self) -> List[str]:
        return split_globs(self.include_glob)

    def exclude_patterns(self) -> List[str]:
        return split_globs(self.exclude_glob)

    def with_overrides(self, **overrides) -> 'RagConfig':
        return replace(self, **overrides)


def split_globs(value: str) -> List[str]:
    """Split a comma-separated glob list, leaving commas inside {...} alone."""
    patterns = []
    current = []
    depth = 0

    for ch in value:
        if ch == '{':
            depth += 1
        elif ch == '}' and depth > 0:
            depth -= 1
        elif ch == ',' and depth == 0:
            patterns.append(''.join(current))
            current = []
            continue
        current.append(ch)
    patterns.append(''.join(current))

    return [p.strip() for p in patterns if p.strip()]


# Environment variable -> RagConfig field
ENV_FIELDS = {
    "REVIEW_RAG_ENABLED": "enabled",
    "REVIEW_RAG_INDEX_ON_STARTUP": "index_on_startup",
    "REVIEW_RAG_EMBEDDING_MODEL": "embedding_model",
    "REVIEW_RAG_MAX_RESULTS": "max_results",
    "REVIEW_RAG_SIMILARITY_THRESHOLD": "similarity_threshold",
    "REVIEW_RAG_INCLUDE_GLOB": "include_glob",
    "REVIEW_RAG_EXCLUDE_GLOB": "exclude_glob",
    "REVIEW_RAG_CHUNK_SIZE": "chunk_size",
    "REVIEW_RAG_CHUNK_OVERLAP": "chunk_overlap",
    "REVIEW_RAG_EMBEDDING_PROVIDER": "embedding_provider",
    "REVIEW_RAG_REQUEST_TIMEOUT": "request_timeout",
    "REVIEW_RAG_MAX_FILE_BYTES": "max_file_bytes",
    "REVIEW_RAG_MAX_FILES": "max_files",
    "REVIEW_RAG_QUERY_CHARS": "query_chars",
    "REVIEW_RAG_STORAGE_DIR": "storage_dir",
    "OLLAMA_ENDPOINT": "endpoint",
    "OPENAI_API_KEY": "api_key",
}

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


def _parse_value(env_name: str, raw: str, target_type: Any) -> Any:
    if target_type is bool:
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"{env_name} must be a boolean, got {raw!r}")
    if target_type is int:
        try:
            return int(raw.strip().replace('_', ''))
        except ValueError:
            raise ValueError(f"{env_name} must be an integer, got {raw!r}") from None
    if target_type is float:
        try:
            return float(raw.strip())
        except ValueError:
            raise ValueError(f"{env_name} must be a number, got {raw!r}") from None
    return raw


def _field_types() -> Dict[str, Any]:
    types = {}
    for f in fields(RagConfig):
        default = f.default
        types[f.name] = type(default) if default is not None else str
    return types


def load_rag_config(env_file: Optional[str] = None, **overrides) -> RagConfig:
    """
    Build a RagConfig from defaults, the environment and explicit overrides.

    Args:
        env_file: Optional .env path; the default .env lookup is used if omitted
        **overrides: RagConfig fields that win over everything else

    Returns:
        Validated RagConfig
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv(find_dotenv(usecwd=True))

    types = _field_types()
    values: Dict[str, Any] = {}

    for env_name, field_name in ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is None:
            continue
        values[field_name] = _parse_value(env_name, raw, types[field_name])

    values.update({k: v for k, v in overrides.items() if v is not None})
    return RagConfig(**values)
