"""Tests for the background expiry sweeps."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from spaceledger.core.exceptions import PersistenceError
from spaceledger.maintenance import MaintenanceScheduler, SweepResult, run_all_sweeps
from spaceledger.service import CredentialLedger

from .helpers import make_keypair


@pytest.fixture
def ledger(settings, backend, clock):
    return CredentialLedger(settings, backend, clock=clock)


def _seed_expired(ledger, clock):
    key, did = make_keypair()
    _, user = make_keypair()
    ledger.sessions.create("admin@example.com", did)
    ledger.challenges.issue_challenge(did)
    ledger.delegate(user, "did:key:z6MkSpace", "bafy1", "p", expires_at=clock.now + timedelta(minutes=1))
    clock.advance(days=2)


class TestSweepResult:
    def test_str(self):
        assert str(SweepResult("sessions", {"removed": 3})) == "sessions: removed=3"


class TestRunAllSweeps:
    """Tests for the one-shot sweep used by the CLI."""

    def test_runs_every_sweep(self, ledger, clock):
        _seed_expired(ledger, clock)
        results = {r.operation: r.details["removed"] for r in run_all_sweeps(ledger)}
        assert results == {"sessions": 1, "delegations": 1, "challenges": 1}

    def test_nothing_to_do(self, ledger):
        assert all(r.details["removed"] == 0 for r in run_all_sweeps(ledger))


class TestMaintenanceScheduler:
    """Tests for the asyncio scheduler."""

    def test_intervals_from_settings(self, ledger):
        scheduler = MaintenanceScheduler(ledger)
        assert scheduler.intervals == {"sessions": 3600, "delegations": 3600, "challenges": 3600}

    def test_rejects_unknown_sweep(self, ledger):
        with pytest.raises(ValueError):
            MaintenanceScheduler(ledger, intervals={"beliefs": 1})

    @pytest.mark.asyncio
    async def test_start_runs_sweeps_until_stopped(self, ledger, clock):
        _seed_expired(ledger, clock)
        scheduler = MaintenanceScheduler(
            ledger,
            intervals={"sessions": 0.01, "delegations": 0.01, "challenges": 0.01},
        )

        await scheduler.start()
        assert scheduler.running is True
        for _ in range(200):
            if len(scheduler.last_results) == 3:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert scheduler.running is False
        assert set(scheduler.last_results) == {"sessions", "delegations", "challenges"}
        assert ledger.backend._delegations == {}

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, ledger):
        scheduler = MaintenanceScheduler(ledger)
        await scheduler.start()
        tasks = list(scheduler._tasks)
        await scheduler.start()
        assert scheduler._tasks == tasks
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failed_sweep_is_logged_and_survives(self, ledger, backend, caplog):
        backend.delete_expired_delegations = MagicMock(side_effect=PersistenceError("down"))
        scheduler = MaintenanceScheduler(ledger)

        assert await scheduler.run_once("delegations") is None
        assert "Sweep failed" in caplog.text
        assert (await scheduler.run_once("sessions")).details == {"removed": 0}

    @pytest.mark.asyncio
    async def test_stop_without_start(self, ledger):
        await MaintenanceScheduler(ledger).stop()
