"""
Pytest configuration and shared fixtures.

Every external collaborator is replaced by an in-memory fake (fakes.py).
"""

import pytest

from reelqueue.execution.progress import EventChannel
from reelqueue.jobs.registry import JobRegistry
from reelqueue.settings import AppSettings

from fakes import FakeClock, FakeDeleteService, FakeRunner, make_file


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "e2e: marks tests that need a real ffmpeg/ffprobe install"
    )


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def channel():
    return EventChannel()


@pytest.fixture
def runner(channel):
    return FakeRunner(channel=channel)


@pytest.fixture
def delete_service():
    return FakeDeleteService()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary directory."""
    return AppSettings(
        videos_dir=str(tmp_path / "Movies"),
        downloads_dir=str(tmp_path / "Downloads"),
        temp_root=str(tmp_path / "tmp"),
    )


@pytest.fixture
def media_factory():
    return make_file
