from __future__ import annotations

import logging
import signal
import threading
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Called when a reload is requested; raises on failure.
ReloadFunc = Callable[[], None]


class ReloadError(RuntimeError):
    """One or more reload functions failed."""

    def __init__(self, failures: List[Tuple[str, BaseException]]) -> None:
        self.failures = failures
        details = "; ".join(f"{key}: {exc}" for key, exc in failures)
        super().__init__(f"{len(failures)} reload function(s) failed: {details}")


class ReloadRegistry:
    """
    Named groups of reload functions, e.g. ``"listener|tcp"`` for a listener's
    ``CertificateGetter.reload``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._funcs: Dict[str, List[ReloadFunc]] = {}

    def register(self, key: str, func: ReloadFunc) -> None:
        with self._lock:
            self._funcs.setdefault(key, []).append(func)

    def unregister(self, key: str) -> None:
        with self._lock:
            self._funcs.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._funcs)

    def reload_all(self) -> None:
        """
        Run every registered function. A failure does not stop the remaining
        functions; all failures are raised together afterwards.
        """
        with self._lock:
            snapshot = [(key, list(funcs)) for key, funcs in self._funcs.items()]

        failures: List[Tuple[str, BaseException]] = []
        for key, funcs in snapshot:
            for func in funcs:
                try:
                    func()
                except Exception as exc:
                    logger.warning("[stepwise] reload of %s failed: %s", key, exc)
                    failures.append((key, exc))
        if failures:
            raise ReloadError(failures)


def install_sighup_handler(registry: ReloadRegistry) -> Optional[Callable]:
    """
    Run ``registry.reload_all`` whenever the process receives SIGHUP.

    Returns the previous handler, or None on platforms without SIGHUP.
    Must be called from the main thread.
    """
    if not hasattr(signal, "SIGHUP"):
        logger.debug("[stepwise] SIGHUP not available; reload handler not installed")
        return None

    def _handler(signum, frame) -> None:
        logger.info("[stepwise] SIGHUP received; reloading %d key(s)", len(registry.keys()))
        try:
            registry.reload_all()
        except ReloadError as exc:
            logger.error("[stepwise] %s", exc)

    return signal.signal(signal.SIGHUP, _handler)
