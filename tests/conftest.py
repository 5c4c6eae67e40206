import pytest

from hangouts.client import ProtocolClient
from shared.config import ClientConfig

from protocol_fakes import FakeApi, FakeChannel, FakeTime


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def client(channel, api, fake_time) -> ProtocolClient:
    return ProtocolClient(channel, api=api, config=ClientConfig(), time_source=fake_time)


class Recorder:
    """Collects signal emissions."""

    def __init__(self) -> None:
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)

    def __len__(self) -> int:
        return len(self.calls)


@pytest.fixture
def recorder():
    return Recorder
