"""
natchat Test Configuration
==========================

[QA] Central pytest configuration with fixtures for all test types:
- Unit tests: Isolated, no real sockets, fast
- Integration tests: Real UDP sockets on 127.0.0.1
- E2E tests: Full node stack (reconciler + transport + chat)

[FIXTURES]
- registry: Fresh PeerRegistry
- fake_sender: Records datagrams instead of sending them
- no_sleep: Sleep stub that records requested delays
- identity_factory: Build PeerIdentity records

Usage:
    pytest tests/unit/          # Fast unit tests
    pytest tests/integration/   # Integration tests
    pytest tests/e2e/           # End-to-end tests
"""

import sys
import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Tuple

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (I/O, slower)")
    config.addinivalue_line("markers", "e2e: End-to-end tests (full stack)")
    config.addinivalue_line("markers", "slow: Slow tests (skip with -m 'not slow')")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their path."""
    for item in items:
        path = str(item.fspath)
        if "/unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in path:
            item.add_marker(pytest.mark.e2e)


# ============================================================================
# Logging Configuration
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


# ============================================================================
# Network Stubs
# ============================================================================

class FakeSender:
    """
    Stand-in for UDPTransport.send_to.

    [USAGE]
        sender = FakeSender()
        await sender.send_to(("1.2.3.4", 5000), b"x")
        assert sender.sent == [(("1.2.3.4", 5000), b"x")]
    """

    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[Tuple[str, int], bytes]] = []
        self.fail = fail

    async def send_to(self, address: Tuple[str, int], data: bytes) -> bool:
        self.sent.append((address, data))
        return not self.fail

    def sent_to(self, address: Tuple[str, int]) -> List[bytes]:
        return [data for addr, data in self.sent if addr == address]


class SleepRecorder:
    """Sleep stub: records the delay and yields to the loop once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture(scope="function")
def registry():
    """Create fresh PeerRegistry for each test."""
    from natchat.registry import PeerRegistry
    return PeerRegistry()


@pytest.fixture(scope="function")
def fake_sender() -> FakeSender:
    return FakeSender()


@pytest.fixture(scope="function")
def no_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture(scope="function")
def identity_factory() -> Callable[..., object]:
    """Factory to build PeerIdentity records."""
    from natchat.identity import PeerIdentity

    def _create(public_ip: str = "", private_ip: str = "", port: str = "") -> PeerIdentity:
        return PeerIdentity(public_ip=public_ip, private_ip=private_ip, port=port)

    return _create


async def wait_for(condition, timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll condition() until True or timeout."""
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if condition():
            return True
        await asyncio.sleep(interval)
    return False
