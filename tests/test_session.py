"""Tests for RagSession, the host-facing entry point."""

import time
from unittest.mock import Mock

import pytest

from review_rag.indexing.storage import ChunkStore
from review_rag.lazy import LoadState
from review_rag.session import RagSession

from conftest import python_source, write_file


@pytest.fixture
def project(workspace_root):
    write_file(workspace_root, "src/payments.py", python_source(30, "payment"))
    write_file(workspace_root, "src/shipping.py", python_source(30, "shipping"))
    return workspace_root


def test_store_loaded_lazily(project, make_config):
    session = RagSession(project, make_config(), use_network=False)
    assert session._store.state is LoadState.NOT_LOADED

    assert session.store.chunk_count == 0
    assert session._store.state is LoadState.LOADED


def test_relative_storage_dir_lives_in_workspace(project, make_config):
    session = RagSession(project, make_config(storage_dir=".chunk_store"), use_network=False)
    assert session.storage_dir == project.resolve() / ".chunk_store"


def test_disabled_returns_empty_context(project, make_config):
    session = RagSession(project, make_config(enabled=False), use_network=False)
    context = session.get_context("diff", [])
    assert context.results == []
    assert context.summary == "RAG is disabled."


def test_empty_index_returns_no_results(project, make_config):
    session = RagSession(project, make_config(), use_network=False)
    context = session.get_context("diff", [])
    assert context.results == []
    assert context.summary == "No similar code found in the index."


def test_index_then_get_context(project, make_config):
    session = RagSession(project, make_config(), use_network=False)
    stats = session.index_workspace()
    assert stats.files_indexed == 2

    diff = "+    payment_value_99 = compute_payment(order, amount_99)\n"
    context = session.get_context(diff, ["src/shipping.py"])
    assert context.results
    assert {r.chunk.file_path for r in context.results} == {"src/payments.py"}
    assert context.summary.startswith("Retrieved ")


def test_retrieval_errors_do_not_escape(project, make_config, monkeypatch):
    session = RagSession(project, make_config(), use_network=False)
    session.index_workspace()

    def broken():
        raise RuntimeError("index exploded")

    monkeypatch.setattr(session, "retriever", broken)
    context = session.get_context("diff", [])
    assert context.results == []
    assert context.summary == "No similar code found in the index."


def test_availability_probed_once(project, make_config):
    service = Mock()
    service.is_available.return_value = False
    session = RagSession(project, make_config(), embedding_service=service)

    assert session.use_network_embeddings() is False
    assert session.use_network_embeddings() is False
    assert service.is_available.call_count == 1

    session.invalidate_availability()
    session.use_network_embeddings()
    assert service.is_available.call_count == 2


def test_explicit_use_network_skips_probe(project, make_config):
    service = Mock()
    session = RagSession(project, make_config(), embedding_service=service, use_network=False)
    assert session.use_network_embeddings() is False
    service.is_available.assert_not_called()


def test_index_files_updates_and_drops(project, make_config):
    session = RagSession(project, make_config(), use_network=False)
    session.index_workspace()

    (project / "src/shipping.py").unlink()
    write_file(project, "src/new.py", python_source(5, "fresh"))

    counts = session.index_files(["src/shipping.py", project / "src/new.py"])
    assert counts == {"src/shipping.py": 0, "src/new.py": 1}
    assert sorted(session.store.get_indexed_files()) == ["src/new.py", "src/payments.py"]


def test_clear_index(project, make_config):
    config = make_config()
    session = RagSession(project, config, use_network=False)
    session.index_workspace()
    session.clear_index()

    assert session.store.chunk_count == 0
    assert RagSession(project, config, use_network=False).store.chunk_count == 0


def test_background_indexing_requires_startup_flag(project, make_config):
    session = RagSession(project, make_config(index_on_startup=False), use_network=False)
    assert session.start_background_indexing() is None

    session = RagSession(project, make_config(enabled=False, index_on_startup=True), use_network=False)
    assert session.start_background_indexing() is None


def test_background_indexing(project, make_config):
    session = RagSession(project, make_config(index_on_startup=True), use_network=False)
    thread = session.start_background_indexing()

    assert thread is not None
    thread.join(timeout=30)
    assert not thread.is_alive()
    assert sorted(session.store.get_indexed_files()) == ["src/payments.py", "src/shipping.py"]


def test_status(project, make_config):
    session = RagSession(project, make_config(), use_network=False)
    session.index_workspace()
    status = session.status()

    assert status["enabled"] is True
    assert status["total_files"] == 2
    assert status["total_chunks"] == session.store.chunk_count
    assert status["embedding_dimensions"] == [512]
    assert status["file_types"] == {".py": status["total_chunks"]}


def test_background_indexing_shares_slow_loading_store(project, make_config, monkeypatch):
    real_load = ChunkStore._load

    def slow_load(store):
        time.sleep(0.3)
        real_load(store)

    monkeypatch.setattr(ChunkStore, "_load", slow_load)

    session = RagSession(project, make_config(index_on_startup=True), use_network=False)
    thread = session.start_background_indexing()
    time.sleep(0.05)

    store = session.store
    thread.join(timeout=30)

    assert session.indexer().store is store
    assert sorted(store.get_indexed_files()) == ["src/payments.py", "src/shipping.py"]

    session.index_files([write_file(project, "src/later.py", python_source(5, "later"))])
    assert "src/later.py" in session.store.get_indexed_files()
