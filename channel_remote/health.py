from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from .cdp import CdpError
from .page import Page

logger = logging.getLogger("channel_remote.health")

PROBE_JS = "({readyState: document.readyState, url: location.href, now: Date.now()})"


@dataclass(frozen=True)
class HealthSample:
    timestamp: float
    responded: bool
    round_trip_ms: float
    ready_state: str | None = None
    url: str | None = None
    error: str | None = None

    @property
    def frozen(self) -> bool:
        return not self.responded

    @property
    def status(self) -> str:
        return "frozen" if self.frozen else "responsive"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status
        return data


class HealthMonitor:
    """Single bounded round-trip into the page's execution context.

    A probe slower than the timeout is frozen even if it eventually answered;
    false positives are the price of bounded latency.
    """

    def __init__(
        self,
        timeout: float = 3.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.timeout = timeout
        self._clock = clock
        self._wall_clock = wall_clock

    def probe(self, page: Page | None, timeout_ms: float | None = None) -> HealthSample:
        timeout = self.timeout if timeout_ms is None else timeout_ms / 1000.0
        now = self._wall_clock()
        if page is None:
            return HealthSample(now, False, 0.0, error="no active page")

        started = self._clock()
        try:
            value = page.eval_js(PROBE_JS, timeout=timeout)
        except CdpError as exc:
            elapsed_ms = (self._clock() - started) * 1000.0
            logger.warning("Health probe failed after %.0fms: %s", elapsed_ms, exc)
            return HealthSample(now, False, elapsed_ms, error=str(exc))

        elapsed_ms = (self._clock() - started) * 1000.0
        info = value if isinstance(value, dict) else {}
        if elapsed_ms > timeout * 1000.0:
            logger.warning("Health probe answered after %.0fms (limit %.0fms); treating as frozen", elapsed_ms, timeout * 1000.0)
            return HealthSample(now, False, elapsed_ms, info.get("readyState"), info.get("url"), error="probe exceeded timeout")
        return HealthSample(now, True, elapsed_ms, info.get("readyState"), info.get("url"))


__all__ = ["HealthMonitor", "HealthSample", "PROBE_JS"]
