"""
Pytest config.

Local imports like `import receiver` rely on the repo root being on sys.path. When a
global `pytest` entrypoint is used without an editable install that doesn't happen
reliably during collection, so we pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

_RECEIVER_ENV = (
    "PORT",
    "PROMETHEUS_URL",
    "PROMETHEUS_LOOKBACK",
    "PROMETHEUS_TIMEOUT",
    "LLM_TIMEOUT",
    "JOB_QUEUE_SIZE",
    "WORKER_CONCURRENCY",
    "MAX_STORED_ANALYSES",
    "LLM_BACKENDS_JSON",
    "METRIC_QUERIES_JSON",
    "AWS_REGION",
)


@pytest.fixture(autouse=True)
def _isolate_receiver_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Configuration is read from the environment; a developer shell exporting e.g.
    LLM_BACKENDS_JSON must not leak into unit tests.
    """
    for name in _RECEIVER_ENV:
        monkeypatch.delenv(name, raising=False)


class RecordingObserver:
    """Observer fake that remembers every event it receives."""

    def __init__(self) -> None:
        self.events = []

    def alert_received(self, status: str) -> None:
        self.events.append(("alert_received", status))

    def job_result(self, result: str) -> None:
        self.events.append(("job_result", result))

    def queue_depth_changed(self, delta: int) -> None:
        self.events.append(("queue_depth", delta))

    def job_duration(self, seconds: float) -> None:
        self.events.append(("job_duration", seconds))

    def provider_request(self, provider: str, result: str) -> None:
        self.events.append(("provider_request", provider, result))

    def prometheus_query(self, query: str, result: str) -> None:
        self.events.append(("prometheus_query", query, result))

    def named(self, kind: str):
        return [e for e in self.events if e[0] == kind]


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


def grafana_payload(**overrides):
    """A realistic two-alert Grafana notification body (as parsed JSON)."""
    body = {
        "receiver": "edge-analysis",
        "status": "firing",
        "orgId": 1,
        "alerts": [
            {
                "status": "firing",
                "labels": {"alertname": "GatewayUnreachable", "site": "lab-1"},
                "annotations": {"summary": "gateway ping failing"},
                "startsAt": "2026-03-01T10:05:00Z",
                "endsAt": "0001-01-01T00:00:00Z",
                "generatorURL": "http://grafana/alerting/1",
                "fingerprint": "abc123",
            },
            {
                "status": "firing",
                "labels": {"alertname": "PacketLoss", "site": "lab-1"},
                "annotations": {},
                "startsAt": "2026-03-01T10:00:00Z",
                "endsAt": "0001-01-01T00:00:00Z",
                "fingerprint": "def456",
            },
        ],
        "groupLabels": {"site": "lab-1"},
        "commonLabels": {"site": "lab-1"},
        "commonAnnotations": {},
        "externalURL": "http://grafana",
        "version": "1",
        "groupKey": '{}/{site="lab-1"}:{alertname="GatewayUnreachable"}',
        "truncatedAlerts": 0,
    }
    body.update(overrides)
    return body


@pytest.fixture
def make_payload():
    return grafana_payload
