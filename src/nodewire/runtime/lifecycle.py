"""
Start/stop hooks of one runtime instance.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LifecycleHook:
    on_start: Callable[[], Any] | None = None
    on_stop: Callable[[], Any] | None = None
    name: str = "hook"


class Lifecycle:
    """
    Ordered start/stop hooks.

    Start hooks run in registration order; stop hooks of the hooks that started
    run in reverse order. A hook appended while starting runs in the same pass.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hooks: list[LifecycleHook] = []
        self._started = 0

    def append(
        self,
        on_start: Callable[[], Any] | None = None,
        on_stop: Callable[[], Any] | None = None,
        *,
        name: str = "hook",
    ) -> None:
        with self._lock:
            self._hooks.append(LifecycleHook(on_start, on_stop, name))

    def __len__(self) -> int:
        with self._lock:
            return len(self._hooks)

    def start(self) -> None:
        """
        Run start hooks.

        If one fails, the hooks started before it are stopped and the original
        error is raised.
        """
        while True:
            with self._lock:
                if self._started >= len(self._hooks):
                    return
                hook = self._hooks[self._started]
            if hook.on_start is not None:
                logger.debug("starting %s", hook.name)
                try:
                    hook.on_start()
                except Exception as e:
                    for failure in self._run_stop():
                        e.add_note(f"rollback failed: {failure!r}")
                    raise
            with self._lock:
                self._started += 1

    def _run_stop(self) -> list[Exception]:
        with self._lock:
            started = self._hooks[: self._started]
            self._started = 0
        errors: list[Exception] = []
        for hook in reversed(started):
            if hook.on_stop is None:
                continue
            logger.debug("stopping %s", hook.name)
            try:
                hook.on_stop()
            except Exception as e:
                errors.append(e)
        return errors

    def stop(self, timeout: float | None = None) -> bool:
        """
        Run stop hooks in reverse order, waiting at most ``timeout`` seconds.

        Returns:
            ``False`` if the hooks were still running when the timeout expired.

        Raises:
            Exception: The first error raised by a stop hook; later ones are
                attached as notes.
        """
        errors: list[Exception] = []
        worker = threading.Thread(target=lambda: errors.extend(self._run_stop()), name="nodewire-stop", daemon=True)
        worker.start()
        worker.join(timeout)
        if worker.is_alive():
            logger.warning("stop hooks did not finish within %.1fs", timeout)
            return False
        if errors:
            first = errors[0]
            for other in errors[1:]:
                first.add_note(f"also failed: {other!r}")
            raise first
        return True
