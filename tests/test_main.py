#!/usr/bin/env python3
"""Tests for the command-line entry point and the engine."""
import json
import logging
import sys

import pytest

from conftest import FakeResponse, FakeSession
from remotepush.client import RemoteWriteClient
from remotepush.config import Config
from remotepush.engine import PushEngine
from remotepush.errors import TransportError
from remotepush.main import build_formatter, main
from remotepush.series import ObservationBatch
from remotepush.sources import MetricSource
from remotepush.transport import RemoteWriteTransport

CONFIG = """
remote_write:
  url: http://localhost:9090/api/v1/write
  job: health
  instance: host1
sources:
  - name: fixed
    type: static
    values:
      - name: up
        value: 1
      - name: queue_depth
        value: 4
        labels:
          queue: mail
  - name: "paused"
    type: static
    enabled: false
    values: []
"""


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for var in ("REMOTE_WRITE_URL", "REMOTE_WRITE_USERNAME", "REMOTE_WRITE_BEARER_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "push.yaml"
    path.write_text(CONFIG)
    return str(path)


class BrokenSource(MetricSource):
    def collect(self) -> ObservationBatch:
        raise RuntimeError("boom")


def make_config():
    return Config(
        remote_write={"url": "http://localhost:9090/api/v1/write", "job": "health", "instance": "host1"},
        sources=[
            {"name": "fixed", "type": "static", "values": [{"name": "up", "value": 1}]},
            {"name": "paused", "type": "static", "enabled": False, "values": []},
        ],
    )


def test_dry_run(config_file, capsys):
    assert main(["--config", config_file, "--dry-run"]) == 0
    assert capsys.readouterr().out.strip() == "would push 2 metrics"


def test_push_success(config_file, capsys, monkeypatch):
    monkeypatch.setattr(RemoteWriteTransport, "send", lambda self, body: 204)
    assert main(["--config", config_file]) == 0
    assert capsys.readouterr().out.strip() == "pushed 2 metrics"


def test_transport_failure_exit_code(config_file, capsys, monkeypatch):
    def reject(self, body):
        raise TransportError(400, "err: out of order sample")

    monkeypatch.setattr(RemoteWriteTransport, "send", reject)

    assert main(["--config", config_file]) == 1
    captured = capsys.readouterr()
    assert "TransportError: HTTP 400: err: out of order sample" in captured.err
    assert captured.out == ""


def test_bad_config_exit_code(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "missing.yaml")]) == 1
    assert "Error loading configuration" in capsys.readouterr().err


def test_engine_skips_disabled_sources():
    engine = PushEngine(make_config())
    assert [source.name for source in engine.sources] == ["fixed"]


def test_engine_omits_failing_source(remote_write_config):
    session = FakeSession()
    client = RemoteWriteClient(
        remote_write_config, transport=RemoteWriteTransport(remote_write_config, session=session)
    )
    engine = PushEngine(make_config(), client=client)
    engine.sources.append(BrokenSource("broken"))

    batches = engine.collect()
    assert [batch.source for batch in batches] == ["fixed"]

    result = engine.run()
    assert result.series_count == 1
    assert len(session.sent) == 1
    assert session.closed


def test_engine_closes_session_when_push_fails(remote_write_config):
    session = FakeSession(FakeResponse(500, "down"))
    client = RemoteWriteClient(
        remote_write_config, transport=RemoteWriteTransport(remote_write_config, session=session)
    )

    with pytest.raises(TransportError):
        PushEngine(make_config(), client=client).run()
    assert session.closed


def test_colliding_stats_keys_do_not_abort_push(tmp_path):
    stats = tmp_path / "stats.json"
    stats.write_text('{"messageCount": 1, "message_count": 2}')
    config = Config(
        remote_write={"url": "http://localhost:9090/api/v1/write", "job": "health", "instance": "host1"},
        sources=[
            {"name": "stats", "type": "stats_file", "path": str(stats)},
            {"name": "fixed", "type": "static", "values": [{"name": "up", "value": 1}]},
        ],
    )

    result = PushEngine(config).run(dry_run=True)
    assert result.series_count == 2


def test_json_log_lines_stay_valid_json():
    try:
        raise TransportError(400, '{"error": "out of order"}')
    except TransportError:
        exc_info = sys.exc_info()
    record = logging.LogRecord(
        "remotepush.transport", logging.ERROR, __file__, 1,
        'Remote write rejected with HTTP 400: {"error": "out of order"}', None, exc_info,
    )

    line = build_formatter("json").format(record)
    entry = json.loads(line)

    assert entry["message"] == 'Remote write rejected with HTTP 400: {"error": "out of order"}'
    assert entry["level"] == "ERROR"
    assert entry["logger"] == "remotepush.transport"
    assert "TransportError" in entry["exc_info"]
    assert "\n" not in line


def test_text_log_format():
    record = logging.LogRecord("remotepush.client", logging.INFO, __file__, 1, "pushed 3 metrics", None, None)
    assert build_formatter("text").format(record).endswith("| INFO     | remotepush.client | pushed 3 metrics")
