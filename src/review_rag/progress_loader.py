"""
Progress Loader

Single-line terminal progress for indexing runs. The display redraws on a
daemon thread while files are chunked and embedded, showing how many files
are done and which one is being processed.
"""

import sys
import threading
import time
from enum import Enum
from typing import Optional, TextIO

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
BAR_WIDTH = 20
MAX_LINE = 115


class LoaderStyle(Enum):
    SPINNER = "spinner"
    PROGRESS_BAR = "progress_bar"


class IndexProgress:
    """
    Progress display for a run over a known number of files.

    ``update`` has the indexer's progress-callback signature, so an instance
    can be handed straight to ``index_workspace``. When the stream is not a
    terminal nothing is animated and only the final message is written.
    """

    def __init__(self,
                 label: str,
                 style: LoaderStyle = LoaderStyle.SPINNER,
                 stream: Optional[TextIO] = None,
                 interval: float = 0.15):
        self.label = label
        self.style = style
        self.stream = stream or sys.stdout
        self.interval = interval

        self.done = 0
        self.total = 0
        self.current_path = ""

        self._frame = 0
        self._started_at: Optional[float] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._lock = threading.Lock()

    @property
    def animated(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.time() - self._started_at

    def __enter__(self) -> 'IndexProgress':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    def start(self):
        if self._started_at is not None:
            return
        self._started_at = time.time()
        self._stop.clear()
        if self.animated:
            self._thread = threading.Thread(target=self._redraw_loop, daemon=True)
            self._thread.start()

    def stop(self, final_message: Optional[str] = None):
        """Stop redrawing, clear the line and print an optional final message."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=0.5)
            self._thread = None

        if self.animated:
            self.stream.write("\r" + " " * MAX_LINE + "\r")
        if final_message:
            self.stream.write(f"{final_message} ({self.elapsed:.1f}s)\n")
        self.stream.flush()

    def update(self, done: int, total: int, path: str = ""):
        with self._lock:
            self.done = done
            self.total = total
            self.current_path = path

    def render_line(self) -> str:
        """Current status line, truncated to fit one terminal row."""
        with self._lock:
            done, total, path = self.done, self.total, self.current_path

        if self.style is LoaderStyle.PROGRESS_BAR:
            prefix = self._bar(done, total)
        else:
            prefix = SPINNER_FRAMES[self._frame % len(SPINNER_FRAMES)]

        line = f"{prefix} {self.label}"
        if total:
            line += f" [{min(done + 1, total)}/{total}]"
        if path:
            line += f" {path}"
        line += f" ({self.elapsed:.1f}s)"

        if len(line) > MAX_LINE:
            line = line[:MAX_LINE - 3] + "..."
        return line

    @staticmethod
    def _bar(done: int, total: int) -> str:
        filled = BAR_WIDTH * done // total if total else 0
        return "[" + "█" * filled + "▁" * (BAR_WIDTH - filled) + "]"

    def _redraw_loop(self):
        while not self._stop.is_set():
            try:
                self.stream.write("\r" + self.render_line())
                self.stream.flush()
            except (OSError, ValueError):
                # stream closed underneath us
                break
            self._frame += 1
            self._stop.wait(self.interval)
