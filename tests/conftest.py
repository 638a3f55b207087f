import pytest

from stickerbot.config.schema import Config, SessionConfig
from stickerbot.i18n.translator import I18n

from helpers import FakeClock, RecordingBus, RecordingStore


@pytest.fixture
def config():
    return Config(session=SessionConfig(store_dir=None))


@pytest.fixture
def clock():
    return FakeClock(start=1_000_000.0)


@pytest.fixture
def log():
    return []


@pytest.fixture
def bus(log):
    return RecordingBus(log)


@pytest.fixture
def store(log):
    return RecordingStore(log)


@pytest.fixture
def i18n():
    return I18n()
