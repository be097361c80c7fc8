"""Tests for LazyValue."""

import threading
import time

from review_rag.lazy import LazyValue, LoadState


class CountingLoader:

    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


def test_loads_once():
    loader = CountingLoader("store")
    lazy = LazyValue(loader)

    assert lazy.state is LoadState.NOT_LOADED
    assert lazy.peek() is None
    assert lazy.get() == "store"
    assert lazy.get() == "store"
    assert loader.calls == 1
    assert lazy.is_loaded


def test_absent_result_is_cached():
    loader = CountingLoader(None)
    lazy = LazyValue(loader)

    assert lazy.get() is None
    assert lazy.get() is None
    assert lazy.state is LoadState.ABSENT
    assert loader.calls == 1


def test_false_is_a_loaded_value():
    lazy = LazyValue(CountingLoader(False))
    assert lazy.get() is False
    assert lazy.state is LoadState.LOADED


def test_invalidate_reloads():
    loader = CountingLoader(1)
    lazy = LazyValue(loader)
    lazy.get()
    lazy.invalidate()

    assert lazy.state is LoadState.NOT_LOADED
    lazy.get()
    assert loader.calls == 2


def test_set_skips_loader():
    loader = CountingLoader("loaded")
    lazy = LazyValue(loader)
    lazy.set("given")

    assert lazy.get() == "given"
    assert loader.calls == 0

    lazy.set(None)
    assert lazy.state is LoadState.ABSENT


def test_concurrent_first_use_loads_once():
    calls = []

    def slow_loader():
        calls.append(1)
        time.sleep(0.1)
        return object()

    lazy = LazyValue(slow_loader)
    results = []
    threads = [threading.Thread(target=lambda: results.append(lazy.get())) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert all(result is results[0] for result in results)
