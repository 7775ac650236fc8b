"""
Instrumentation seam.

Pipeline components report outcomes to an injected Observer instead of touching
process-wide metric objects. The Prometheus-backed implementation lives in
`receiver.metrics`; tests use `NoopObserver` or a recording fake.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Observer(Protocol):
    def alert_received(self, status: str) -> None: ...

    def job_result(self, result: str) -> None: ...

    def queue_depth_changed(self, delta: int) -> None: ...

    def job_duration(self, seconds: float) -> None: ...

    def provider_request(self, provider: str, result: str) -> None: ...

    def prometheus_query(self, query: str, result: str) -> None: ...


class NoopObserver:
    def alert_received(self, status: str) -> None:
        return None

    def job_result(self, result: str) -> None:
        return None

    def queue_depth_changed(self, delta: int) -> None:
        return None

    def job_duration(self, seconds: float) -> None:
        return None

    def provider_request(self, provider: str, result: str) -> None:
        return None

    def prometheus_query(self, query: str, result: str) -> None:
        return None
