"""
Shared test fixtures for the smart-gesture library and the gesture simulator.

- ``binding``: an ``AsyncMock`` shaped like ``EngineBinding`` whose recognizer
  calls answer "no match" until a test scripts them.
- ``simulator_server``: an in-process ``VirtualEngineServer`` listening on an
  ephemeral port, so integration tests need no subprocess.
- ``simulator_binding``: a ``SimulatorEngineBinding`` connected to it.
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from smart_gesture.engine_binding import EngineBinding
from smart_gesture.simulator_binding import SimulatorEngineBinding

from gesture_simulator.engine_model import SimulatedEngine
from gesture_simulator.engine_model import make_sample
from gesture_simulator.virtual_engine_server import VirtualEngineServer

SIMULATOR_HOST = "127.0.0.1"


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that talk to the in-process simulator")
    config.addinivalue_line("markers", "simulator: tests of the gesture simulator itself")


@pytest.fixture
def binding():
    mock = AsyncMock(spec=EngineBinding)
    mock.is_connected = True
    mock.classify_common = AsyncMock(return_value=None)
    mock.classify_custom = AsyncMock(return_value=None)
    mock.delete_label = AsyncMock(return_value=True)
    mock.set_custom_gesture = AsyncMock(return_value=None)
    mock.is_two_gesture_similar = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def sample():
    return make_sample((1.0, 0.0, 0.0), entries=40)


@pytest_asyncio.fixture
async def simulator_server():
    server = VirtualEngineServer(SimulatedEngine(seed=1))
    await server.start(SIMULATOR_HOST, 0)
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def simulator_binding(simulator_server: VirtualEngineServer):
    client = SimulatorEngineBinding(SIMULATOR_HOST, simulator_server.port, call_timeout=2.0)
    await client.connect()
    yield client
    await client.disconnect()
