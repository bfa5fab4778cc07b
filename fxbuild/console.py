"""Console output handler shared by the driver, engines and hardening pass."""
from __future__ import annotations

import sys
import threading


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < info < debug
    Default: 'info'
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
    }

    def __init__(self, level: str = "info"):
        if level not in self.LEVELS:
            raise ValueError(f"Unknown log level '{level}'. Allowed: {', '.join(self.LEVELS)}")
        self.level_name = level
        self.level = self.LEVELS[level]
        # watch-mode reader threads write concurrently with the main thread
        self._lock = threading.Lock()

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            self._emit(f"[INFO] {message}", stream=sys.stdout)

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            self._emit(f"[ERROR] {message}", stream=sys.stderr)

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            self._emit(f"[DEBUG] {message}", stream=sys.stdout)

    def report(self, text: str) -> None:
        """Print a multi-line block (build report) without a level prefix."""
        if self.level >= self.LEVELS["info"]:
            self._emit(text, stream=sys.stdout)

    def _emit(self, line: str, *, stream) -> None:
        with self._lock:
            print(line, file=stream, flush=True)
