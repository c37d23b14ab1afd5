"""Shared fixtures for toolwire tests."""

import sys
from pathlib import Path

import pytest

from toolwire.models import LaunchCommand
from toolwire.settings import ToolwireSettings, clear_settings_cache

FAKE_SERVER = Path(__file__).parent / "fixtures" / "fake_server.py"


def _fake_server_command(*flags: str) -> LaunchCommand:
    return LaunchCommand(executable=sys.executable, args=("-u", str(FAKE_SERVER), *flags))


@pytest.fixture
def fake_server():
    """Factory for launch commands running tests/fixtures/fake_server.py with the given flags."""
    return _fake_server_command


@pytest.fixture(autouse=True)
def _clean_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def fast_settings() -> ToolwireSettings:
    """Settings without settle or backoff delays."""
    return ToolwireSettings(
        _env_file=None,
        spawn_settle_seconds=0,
        handshake_settle_seconds=0,
        retry_backoff_seconds=0,
        terminate_grace_seconds=0.5,
        request_timeout_seconds=10,
    )
