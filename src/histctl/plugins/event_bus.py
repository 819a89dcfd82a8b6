"""Lifecycle event dispatch via pluggy, inline or on a ThreadPoolExecutor.

INVARIANT: Plugin failures are warnings, never errors. A raising hook is
logged and reported back to the caller; it never undoes the operation
that triggered it.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from histctl.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


class EventBus:
    """Dispatches lifecycle hooks to registered plugins.

    Parameters:
        plugin_manager: Loaded PluginManager for hook dispatch.
        sync: Run hooks inline (``--sync``, tests). Hook failures are then
            returned straight from :meth:`dispatch`.
        max_workers: ThreadPoolExecutor worker count for async dispatch.
    """

    def __init__(
        self,
        plugin_manager: PluginManager,
        *,
        sync: bool = False,
        max_workers: int = 2,
    ) -> None:
        self._pm = plugin_manager
        self._sync = sync
        self._executor: ThreadPoolExecutor | None = (
            None if sync else ThreadPoolExecutor(max_workers=max_workers)
        )
        self._futures: list[Future[str | None]] = []
        self._lock = threading.Lock()

    @property
    def sync(self) -> bool:
        return self._sync

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def dispatch(self, hook_name: str, payload: dict[str, Any]) -> list[str]:
        """Call *hook_name* with *payload* on every plugin implementing it.

        Returns failure messages for inline dispatch; async dispatch always
        returns an empty list and reports failures from :meth:`drain`.
        """
        if self._sync or self._executor is None:
            error = self._execute_hook(hook_name, payload)
            return [error] if error else []

        future = self._executor.submit(self._execute_hook, hook_name, payload)
        with self._lock:
            self._futures.append(future)
        return []

    def drain(self, timeout: float = 30) -> list[str]:
        """Wait for in-flight async hooks. Returns their failure messages."""
        with self._lock:
            futures, self._futures = self._futures, []

        errors: list[str] = []
        for future in futures:
            error = future.result(timeout=timeout)
            if error:
                errors.append(error)
        return errors

    def shutdown(self) -> list[str]:
        """Drain pending hooks and stop the executor."""
        errors = self.drain()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        return errors

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _execute_hook(self, hook_name: str, payload: dict[str, Any]) -> str | None:
        """Run one hook. Returns a failure message, or None on success."""
        hook_fn = getattr(self._pm.hook, hook_name, None)
        if hook_fn is None:
            logger.debug("No hook named %s; skipping", hook_name)
            return None

        try:
            hook_fn(**payload)
        except Exception as exc:
            logger.warning("Hook %s failed: %s", hook_name, exc, exc_info=True)
            return f"Plugin hook {hook_name} failed: {exc}"
        return None
