"""
Lazily loaded values with an explicit three-way state.

A LazyValue starts NOT_LOADED. The first get() runs the loader once, even
when several threads ask at the same time: a result of None moves it to
ABSENT, anything else to LOADED. Both outcomes are cached until
invalidate().
"""

import logging
import threading
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class LoadState(Enum):
    NOT_LOADED = "not_loaded"
    ABSENT = "absent"
    LOADED = "loaded"


class LazyValue(Generic[T]):
    """Cache for a value that is computed on first use."""

    def __init__(self, loader: Callable[[], Optional[T]], name: str = "value"):
        self._loader = loader
        self._name = name
        self._state = LoadState.NOT_LOADED
        self._value: Optional[T] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state is LoadState.LOADED

    def get(self) -> Optional[T]:
        """Return the cached value, running the loader on first use."""
        if self._state is not LoadState.NOT_LOADED:
            return self._value

        with self._lock:
            # another thread may have finished loading while we waited
            if self._state is LoadState.NOT_LOADED:
                value = self._loader()
                self._value = value
                self._state = LoadState.ABSENT if value is None else LoadState.LOADED
                logger.debug("%s: %s", self._name, self._state.value)
            return self._value

    def peek(self) -> Optional[T]:
        """Return the cached value without loading."""
        return self._value

    def set(self, value: Optional[T]):
        """Replace the cached value directly."""
        with self._lock:
            self._value = value
            self._state = LoadState.ABSENT if value is None else LoadState.LOADED

    def invalidate(self):
        """Forget the cached value; the next get() reloads."""
        with self._lock:
            self._state = LoadState.NOT_LOADED
            self._value = None
