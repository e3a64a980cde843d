# tests/conftest.py

import os

import pytest
import pytest_asyncio

from fakes.fake_session import FakeSession
from helpers import CapturingBus

from robot_base.research.simulation import SimulatedBase, serve_simulated_base


# ============== Fixtures ==============

@pytest.fixture
def bus():
    return CapturingBus()


@pytest.fixture
def session():
    return FakeSession()


@pytest_asyncio.fixture
async def sim():
    """SimulatedBase served on an ephemeral localhost port: yields (base, url)."""
    base = SimulatedBase()
    server = await serve_simulated_base(base, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield base, f"ws://127.0.0.1:{port}"
    finally:
        server.close()
        await server.wait_closed()


# ============== Pytest Configuration ==============

def pytest_addoption(parser):
    parser.addoption("--robot-url", action="store", default=os.getenv("ROBOT_URL", "ws://192.168.1.10:8439"))
    parser.addoption("--run-hil", action="store_true", default=False, help="Run HIL tests")
    parser.addoption("--hil-timeout", action="store", type=float, default=2.0, help="HIL receive timeout")


def pytest_collection_modifyitems(config, items):
    """Skip HIL tests unless --run-hil is specified."""
    if not config.getoption("--run-hil"):
        skip_hil = pytest.mark.skip(reason="Need --run-hil option to run HIL tests")
        for item in items:
            if "hil" in item.keywords:
                item.add_marker(skip_hil)


# ============== HIL Fixtures ==============

@pytest.fixture(scope="session")
def robot_url(request) -> str:
    return request.config.getoption("--robot-url")


@pytest.fixture(scope="session")
def hil_timeout(request) -> float:
    return request.config.getoption("--hil-timeout")
