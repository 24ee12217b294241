# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Background expiry sweeps.

Three independent periodic tasks keep the durable store tidy:

- sessions: deactivate sessions past ``expires_at``
- delegations: delete delegations past ``expires_at``
- challenges: delete challenges past their validity window

The sweeps themselves are blocking store calls, so each runs in a worker
thread. A failing sweep is logged and retried on the next tick. The process
supervisor owns the scheduler and calls :meth:`MaintenanceScheduler.stop`
on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .core.logging import correlation_context

if TYPE_CHECKING:
    from .service import CredentialLedger

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Result from one sweep."""

    operation: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        items = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.operation}: {items}"


def _sweeps(ledger: CredentialLedger) -> dict[str, Callable[[], int]]:
    return {
        "sessions": ledger.sessions.sweep_expired,
        "delegations": ledger.delegations.sweep_expired,
        "challenges": ledger.challenges.cleanup_expired,
    }


def run_all_sweeps(ledger: CredentialLedger) -> list[SweepResult]:
    """Run every sweep once, synchronously."""
    return [SweepResult(name, {"removed": sweep()}) for name, sweep in _sweeps(ledger).items()]


class MaintenanceScheduler:
    """Runs the expiry sweeps on their own intervals."""

    def __init__(
        self,
        ledger: CredentialLedger,
        intervals: dict[str, float] | None = None,
    ) -> None:
        settings = ledger.settings
        self._sweeps = _sweeps(ledger)
        self.intervals: dict[str, float] = {
            "sessions": settings.session_sweep_interval_seconds,
            "delegations": settings.delegation_sweep_interval_seconds,
            "challenges": settings.challenge_sweep_interval_seconds,
        }
        if intervals:
            unknown = set(intervals) - set(self._sweeps)
            if unknown:
                raise ValueError(f"Unknown sweeps: {sorted(unknown)}")
            self.intervals.update(intervals)
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self.last_results: dict[str, SweepResult] = {}

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start one task per sweep."""
        if self._running:
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(self._sweep_loop(name), name=f"spaceledger-sweep-{name}")
            for name in self._sweeps
        ]
        logger.info("Maintenance scheduler started", extra={"extra_data": {"intervals": self.intervals}})

    async def stop(self) -> None:
        """Cancel the sweep tasks and wait for them to finish."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Maintenance scheduler stopped")

    async def run_once(self, name: str) -> SweepResult | None:
        """Run a single sweep in a worker thread; None if it failed."""
        with correlation_context():
            try:
                removed = await asyncio.to_thread(self._sweeps[name])
            except Exception:
                logger.exception("Sweep failed", extra={"extra_data": {"sweep": name}})
                return None
        result = SweepResult(name, {"removed": removed})
        self.last_results[name] = result
        logger.debug("Sweep finished", extra={"extra_data": {"sweep": name, "removed": removed}})
        return result

    async def _sweep_loop(self, name: str) -> None:
        interval = self.intervals[name]
        while self._running:
            await asyncio.sleep(interval)
            await self.run_once(name)
