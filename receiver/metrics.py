"""Prometheus instrumentation for the receiver (exposed on /metrics)."""

from __future__ import annotations

from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class PrometheusObserver:
    """Observer backed by prometheus_client collectors in a dedicated registry."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.alerts_received_total = Counter(
            "alert_receiver_alerts_received_total",
            "Total number of Grafana webhook payloads received",
            ["status"],
            registry=self.registry,
        )
        self.queue_depth = Gauge(
            "alert_receiver_queue_depth",
            "Current number of queued alert analysis jobs",
            registry=self.registry,
        )
        self.jobs_total = Counter(
            "alert_receiver_jobs_total",
            "Total number of alert analysis jobs by result",
            ["result"],
            registry=self.registry,
        )
        self.job_duration_seconds = Histogram(
            "alert_receiver_job_duration_seconds",
            "Time spent enriching and dispatching an alert analysis job",
            registry=self.registry,
        )
        self.provider_requests_total = Counter(
            "alert_receiver_provider_requests_total",
            "Total LLM provider requests by provider and result",
            ["provider", "result"],
            registry=self.registry,
        )
        self.prometheus_queries_total = Counter(
            "alert_receiver_prometheus_queries_total",
            "Total Prometheus enrichment queries by query name and result",
            ["query", "result"],
            registry=self.registry,
        )

    def alert_received(self, status: str) -> None:
        self.alerts_received_total.labels(status=status).inc()

    def job_result(self, result: str) -> None:
        self.jobs_total.labels(result=result).inc()

    def queue_depth_changed(self, delta: int) -> None:
        self.queue_depth.inc(delta)

    def job_duration(self, seconds: float) -> None:
        self.job_duration_seconds.observe(seconds)

    def provider_request(self, provider: str, result: str) -> None:
        self.provider_requests_total.labels(provider=provider, result=result).inc()

    def prometheus_query(self, query: str, result: str) -> None:
        self.prometheus_queries_total.labels(query=query, result=result).inc()

    def render(self) -> bytes:
        return generate_latest(self.registry)
