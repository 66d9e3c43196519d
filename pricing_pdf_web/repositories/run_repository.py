from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from pricing_pdf_web.domain.models import Run

logger = logging.getLogger(__name__)

DEFAULT_RUN_TTL_SECONDS = 20 * 60


@dataclass
class InMemoryRunStore:
    """
    Repository pattern: the live run table (create / lookup / evict).
    Eviction is a cancellable `call_later` timer per run id; pending timers
    never keep the process alive.
    """
    ttl_seconds: float = DEFAULT_RUN_TTL_SECONDS
    _runs: Dict[str, Run] = field(default_factory=dict, init=False, repr=False)
    _timers: Dict[str, asyncio.TimerHandle] = field(default_factory=dict, init=False, repr=False)

    def add(self, run: Run) -> None:
        if run.id in self._runs:
            raise ValueError(f"Run already exists: {run.id}")
        self._runs[run.id] = run

    def get(self, run_id: str) -> Optional[Run]:
        return self._runs.get(run_id)

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._runs

    def __len__(self) -> int:
        return len(self._runs)

    def schedule_eviction(self, run_id: str) -> None:
        """Must be called on the event loop thread."""
        self.cancel_eviction(run_id)
        loop = asyncio.get_running_loop()
        self._timers[run_id] = loop.call_later(self.ttl_seconds, self.evict, run_id)

    def cancel_eviction(self, run_id: str) -> None:
        handle = self._timers.pop(run_id, None)
        if handle is not None:
            handle.cancel()

    def evict(self, run_id: str) -> None:
        self._timers.pop(run_id, None)
        run = self._runs.pop(run_id, None)
        if run is None:
            return
        run.pdf_bytes = None
        logger.info("Run %s evicted from memory", run_id)

    def close(self) -> None:
        for run_id in list(self._timers):
            self.cancel_eviction(run_id)
