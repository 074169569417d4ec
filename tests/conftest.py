# tests/conftest.py

import pytest

from config import SystemConfig
from core.fingerprint_engine import FingerprintEngine
from core.fingerprint_store import InMemoryFingerprintStore
from core.frame_sampler import FrameSampler, InMemoryVideoSource
from helpers import FakeClock, make_frames


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryFingerprintStore(clock=clock)


@pytest.fixture
def source():
    """In-memory video source with a few registered videos at 1 fps"""
    source = InMemoryVideoSource()
    source.add("videos/original.mp4", make_frames(1, 12))
    source.add("videos/other.mp4", make_frames(2, 12))
    return source


@pytest.fixture
def config():
    config = SystemConfig()
    config.n_workers = 1
    config.show_progress = False
    config.cache.backend = "memory"
    return config


@pytest.fixture
def engine(store, source, config):
    return FingerprintEngine(store=store, sampler=FrameSampler(source), config=config)
