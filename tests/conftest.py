"""Global test fixtures for the spaceledger test suite."""

from __future__ import annotations

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from spaceledger.core.config import CoreSettings, clear_config_cache
from spaceledger.identity.principals import PrincipalDeriver
from spaceledger.storage.memory import MemoryBackend

from .helpers import FakeClock, make_keypair

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_config(monkeypatch):
    """Isolate every test from the host environment's SPACELEDGER_* vars."""
    for var in (
        "SPACELEDGER_STORE_BACKEND",
        "SPACELEDGER_CACHE_MAX_SIZE",
        "SPACELEDGER_CHALLENGE_TTL_SECONDS",
        "SPACELEDGER_SESSION_TTL_SECONDS",
        "SPACELEDGER_LOG_LEVEL",
        "SPACELEDGER_LOG_FORMAT",
        "SPACELEDGER_LOG_FILE",
    ):
        monkeypatch.delenv(var, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def settings() -> CoreSettings:
    return CoreSettings(_env_file=None, store_backend="memory")


@pytest.fixture
def keypair() -> tuple[Ed25519PrivateKey, str]:
    return make_keypair()


@pytest.fixture
def principals(backend, clock) -> PrincipalDeriver:
    return PrincipalDeriver(backend, cache_size=100, clock=clock)
