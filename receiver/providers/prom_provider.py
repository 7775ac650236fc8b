"""Prometheus client for point-in-time evidence queries."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

import requests

from receiver.core.errors import PrometheusQueryError
from receiver.core.models import AnalysisJob, MetricQuery, MetricSeries, MetricSnapshot, earliest_alert_time
from receiver.core.observer import NoopObserver, Observer

logger = logging.getLogger(__name__)


@runtime_checkable
class PromProvider(Protocol):
    def instant_query(self, query: MetricQuery, at: datetime) -> MetricSnapshot: ...


def _rfc3339(at: datetime) -> str:
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    return at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _sample_value(sample: Any) -> Optional[str]:
    # Prometheus encodes samples as [<unix ts>, "<value as string>"].
    if isinstance(sample, list) and len(sample) == 2:
        return str(sample[1])
    return None


def summarize_series(series: Sequence[MetricSeries]) -> str:
    """Render series as `k=v,k2=v2 => value; ...` (labels sorted, `__name__` dropped)."""
    if not series:
        return "no series"
    parts: List[str] = []
    for s in series:
        label_parts = sorted(f"{k}={v}" for k, v in (s.labels or {}).items() if k != "__name__")
        if not label_parts:
            parts.append(s.value)
            continue
        parts.append(f"{','.join(label_parts)} => {s.value}")
    return "; ".join(parts)


class PrometheusClient:
    """Instant-query client for the Prometheus HTTP API (`/api/v1/query`)."""

    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        self.base_url = (base_url or "").strip().rstrip("/")
        self.timeout = timeout

    def instant_query(self, query: MetricQuery, at: datetime) -> MetricSnapshot:
        """
        Execute one instant query and translate the result into a MetricSnapshot.

        Raises PrometheusQueryError on transport failure, non-2xx status, undecodable
        body, non-success API status, or a result that does not match its declared type.
        """
        url = f"{self.base_url}/api/v1/query"
        params = {"query": query.query, "time": _rfc3339(at)}
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise PrometheusQueryError(f"query Prometheus: {e}") from e

        if response.status_code >= 300:
            raise PrometheusQueryError(f"Prometheus status {response.status_code}: {(response.text or '').strip()}")

        try:
            data = response.json()
        except ValueError as e:
            raise PrometheusQueryError(f"decode Prometheus response: {e}") from e
        if not isinstance(data, dict):
            raise PrometheusQueryError("decode Prometheus response: expected an object")

        if data.get("status") != "success":
            raise PrometheusQueryError(f"Prometheus {data.get('errorType', '')}: {data.get('error', '')}")

        body = data.get("data")
        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise PrometheusQueryError("decode Prometheus response: expected a data object")
        result_type = str(body.get("resultType") or "")
        result = body.get("result")

        snapshot = MetricSnapshot(
            name=query.name,
            description=query.description,
            query=query.query,
            result_type=result_type,
        )

        if result_type == "scalar":
            value = _sample_value(result)
            if value is None:
                raise PrometheusQueryError("decode scalar result: expected [ts, value]")
            snapshot.series = [MetricSeries(value=value)]
            snapshot.summary = f"value={value}"
        elif result_type == "vector":
            if not isinstance(result, list):
                raise PrometheusQueryError("decode vector result: expected a list")
            series: List[MetricSeries] = []
            for entry in result:
                if not isinstance(entry, dict):
                    raise PrometheusQueryError("decode vector result: expected objects")
                metric = entry.get("metric")
                if metric is None:
                    metric = {}
                if not isinstance(metric, dict):
                    raise PrometheusQueryError("decode vector result: expected a metric object")
                value = _sample_value(entry.get("value"))
                if value is None:
                    raise PrometheusQueryError("decode vector result: expected value [ts, value]")
                series.append(MetricSeries(labels={str(k): str(v) for k, v in metric.items()}, value=value))
            snapshot.series = series
            snapshot.summary = summarize_series(series)
        else:
            snapshot.summary = json.dumps(result, separators=(",", ":"))

        return snapshot


def query_time(job: AnalysisJob, lookback: timedelta, *, now: Optional[datetime] = None) -> datetime:
    """
    Evaluation time for evidence queries.

    Earliest alert start (or job arrival when no alert has one) plus lookback,
    never later than now.
    """
    now_utc = now or datetime.now(timezone.utc)
    anchor = earliest_alert_time(job.payload, job.received_at)
    at = anchor + lookback
    return now_utc if at > now_utc else at


def collect_evidence(
    job: AnalysisJob,
    *,
    provider: PromProvider,
    queries: Sequence[MetricQuery],
    lookback: timedelta,
    observer: Optional[Observer] = None,
    now: Optional[datetime] = None,
) -> List[MetricSnapshot]:
    """
    Run every configured query for a job, in order.

    A failing query never aborts the others: it yields a snapshot carrying only its
    identity and the error string.
    """
    obs = observer or NoopObserver()
    at = query_time(job, lookback, now=now)

    snapshots: List[MetricSnapshot] = []
    for q in queries:
        try:
            snapshot = provider.instant_query(q, at)
        except PrometheusQueryError as e:
            obs.prometheus_query(q.name, "error")
            logger.warning("Prometheus query failed: job_id=%s query=%s error=%s", job.id, q.name, e)
            snapshots.append(MetricSnapshot(name=q.name, description=q.description, query=q.query, error=str(e)))
            continue
        except Exception as e:
            # Provider bugs stay scoped to this query's snapshot.
            obs.prometheus_query(q.name, "error")
            logger.exception("Prometheus query raised unexpectedly: job_id=%s query=%s", job.id, q.name)
            snapshots.append(
                MetricSnapshot(name=q.name, description=q.description, query=q.query, error=f"{type(e).__name__}: {e}")
            )
            continue
        obs.prometheus_query(q.name, "success")
        snapshots.append(snapshot)
    return snapshots
