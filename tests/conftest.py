"""Shared fixtures: a fake requests session so no test touches the network."""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from remotepush.config import RemoteWriteConfig


class FakeResponse:
    def __init__(self, status_code=204, text=""):
        self.status_code = status_code
        self.text = text


class FakeSession:
    """Records prepared requests instead of sending them."""

    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.sent = []
        self.closed = False

    def send(self, prepared, timeout=None):
        self.sent.append((prepared, timeout))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


@pytest.fixture
def collection_instant():
    return datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def remote_write_config():
    return RemoteWriteConfig(
        url="http://receiver.test/api/v1/write",
        job="health",
        instance="host1",
        timeout_s=5,
    )


@pytest.fixture
def fake_session():
    return FakeSession()
