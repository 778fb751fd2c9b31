"""
Pytest configuration and fixtures for the till ledger.
"""

import pytest

from core.connectivity import reset_monitor
from core.ledger import LedgerStore


class FakeClock:
    """
    Monotonic clock the tests move by hand.
    """

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(autouse=True)
def fresh_monitor():
    """
    Every test starts with a new process-wide connectivity monitor.
    """
    reset_monitor(None)
    yield
    reset_monitor(None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stub_remote(settings):
    """
    Route submissions to the in-process remote store stub.
    """
    settings.KASSE_REMOTE_STORE = "stub"
    from core.adapters.remote_adapter import StubRemoteAdapter

    return StubRemoteAdapter()


@pytest.fixture
def alice(db):
    return LedgerStore.register_member("Alice")


@pytest.fixture
def bob(db):
    return LedgerStore.register_member("Bob")
