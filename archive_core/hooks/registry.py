"""
Hook registry.

Maps hook names to callbacks. The ingestion core fires hooks after the
fact; callbacks observe, they never change the ingestion outcome.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

AFTER_FILE_INGESTED = "after_file_ingested"

HookCallback = Callable[..., Any]


class HookRegistry:
    """Named lists of callbacks, fired in registration order."""

    def __init__(self) -> None:
        self._hooks: Dict[str, List[HookCallback]] = {}

    def add(self, name: str, callback: HookCallback) -> None:
        self._hooks.setdefault(name, []).append(callback)

    def remove(self, name: str, callback: HookCallback) -> None:
        callbacks = self._hooks.get(name, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def callbacks(self, name: str) -> List[HookCallback]:
        return list(self._hooks.get(name, []))

    def fire(self, name: str, *args: Any) -> int:
        """Call every callback registered for *name*.

        A failing callback is logged and the rest still run.
        Returns the number of callbacks that failed.
        """
        failures = 0
        for callback in self.callbacks(name):
            try:
                callback(*args)
            except Exception:  # noqa: BLE001
                failures += 1
                logger.exception("Hook '%s' callback %r failed", name, callback)
        return failures

    def clear(self) -> None:
        """Drop every callback (useful for testing)."""
        self._hooks.clear()


# Process-wide registry used when no explicit one is passed
hooks = HookRegistry()
