"""Background thread running a callback at a fixed interval."""

from __future__ import annotations

import threading
from typing import Callable

from code_chronicle.core.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    def __init__(self, interval_seconds: float, callback: Callable[[], None], name: str = "periodic-task") -> None:
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._name = name
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self._callback()
            except Exception:  # noqa: BLE001
                logger.exception("%s failed", self._name)


__all__ = ["PeriodicTask"]
