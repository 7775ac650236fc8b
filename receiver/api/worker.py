from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from receiver.config import Config
from receiver.core.errors import PromptBuildError
from receiver.core.models import (
    AnalysisJob,
    AnalysisRecord,
    BackendResult,
    GrafanaWebhookPayload,
    MetricQuery,
    MetricSnapshot,
    summarize_alerts,
)
from receiver.core.observer import NoopObserver, Observer
from receiver.llm.backends import Backend, build_backends
from receiver.llm.fanout import no_backends_result, run_fanout
from receiver.llm.prompt import build_inference_request
from receiver.providers.prom_provider import PrometheusClient, PromProvider, collect_evidence
from receiver.queue.base import JobQueue
from receiver.storage.memory_store import RecordStore

logger = logging.getLogger(__name__)


def load_payload(payload: str | bytes | Dict[str, Any]) -> GrafanaWebhookPayload:
    """
    Parse a Grafana webhook body into a GrafanaWebhookPayload.

    Raises json.JSONDecodeError / pydantic.ValidationError on malformed input.
    """
    if isinstance(payload, dict):
        return GrafanaWebhookPayload.model_validate(payload)
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    return GrafanaWebhookPayload.model_validate(json.loads(payload))


@dataclass
class AnalysisPipeline:
    """
    Everything a worker needs to turn one job into one stored record.

    Immutable after startup; shared read-only by every worker.
    """

    backends: Sequence[Backend]
    store: RecordStore
    metric_queries: Sequence[MetricQuery] = field(default_factory=tuple)
    prom: Optional[PromProvider] = None
    lookback_seconds: float = 1800.0
    llm_timeout_seconds: float = 30.0
    observer: Observer = field(default_factory=NoopObserver)

    def _collect_metrics(self, job: AnalysisJob) -> List[MetricSnapshot]:
        if self.prom is None:
            return []
        return collect_evidence(
            job,
            provider=self.prom,
            queries=self.metric_queries,
            lookback=timedelta(seconds=self.lookback_seconds),
            observer=self.observer,
        )

    def _run_backends(self, job: AnalysisJob, metrics: List[MetricSnapshot]) -> List[BackendResult]:
        if not self.backends:
            return [no_backends_result()]
        request = build_inference_request(job, metrics, timedelta(seconds=self.lookback_seconds))
        return run_fanout(request, self.backends, timeout=self.llm_timeout_seconds, observer=self.observer)

    def process_job(self, job: AnalysisJob, *, worker_id: int = 0) -> AnalysisRecord:
        """
        Enrich, dispatch and store one job.

        Always stores a record: failures before fan-out are recorded on the record
        instead of dropping the job.
        """
        start = time.monotonic()
        p = job.payload
        record = AnalysisRecord(
            id=job.id,
            received_at=job.received_at,
            alert_status=p.status,
            receiver=p.receiver,
            group_key=p.group_key,
            common_labels=dict(p.common_labels),
            common_annotations=dict(p.common_annotations),
            alerts=summarize_alerts(p.alerts),
        )
        logger.info("processing alert job: job_id=%s worker=%d alerts=%d", job.id, worker_id, len(p.alerts))

        try:
            record.metrics = self._collect_metrics(job)
            try:
                record.providers = self._run_backends(job, record.metrics)
            except PromptBuildError as e:
                logger.warning("prompt construction failed: job_id=%s error=%s", job.id, e)
                record.error = str(e)
                record.providers = [BackendResult(provider="prompt-builder", type="internal", error=str(e))]
        except Exception as e:
            logger.exception("alert job failed: job_id=%s worker=%d", job.id, worker_id)
            record.error = f"{type(e).__name__}: {e}"

        elapsed = time.monotonic() - start
        record.completed_at = datetime.now(timezone.utc)
        self.observer.job_duration(elapsed)
        self.observer.job_result("processed")
        self.store.add(record)

        logger.info("alert job completed: job_id=%s worker=%d duration=%.3fs", job.id, worker_id, elapsed)
        return record


def pipeline_from_config(cfg: Config, *, observer: Optional[Observer] = None) -> AnalysisPipeline:
    """
    Build the pipeline from startup configuration.

    Raises BackendConfigError if any backend is misconfigured.
    """
    backends = build_backends(cfg.backends)
    prom: Optional[PromProvider] = None
    if cfg.prometheus_url.strip():
        prom = PrometheusClient(cfg.prometheus_url, timeout=cfg.prometheus_timeout.total_seconds())
    return AnalysisPipeline(
        backends=backends,
        store=RecordStore(cfg.max_stored_analyses),
        metric_queries=cfg.metric_queries,
        prom=prom,
        lookback_seconds=cfg.prometheus_lookback.total_seconds(),
        llm_timeout_seconds=cfg.llm_timeout.total_seconds(),
        observer=observer or NoopObserver(),
    )


class WorkerPool:
    """
    Fixed set of long-lived worker threads draining one JobQueue.

    Each worker runs a whole job before taking the next. An exception escaping a
    job is logged and the worker keeps looping, so concurrency never silently shrinks.
    """

    def __init__(self, jobs: JobQueue, pipeline: AnalysisPipeline, *, worker_count: int) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be >= 1")
        self.jobs = jobs
        self.pipeline = pipeline
        self.worker_count = worker_count
        self._threads: List[threading.Thread] = []
        self._started = False
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            for i in range(self.worker_count):
                t = threading.Thread(target=self._run, args=(i + 1,), name=f"worker-{i + 1}", daemon=True)
                t.start()
                self._threads.append(t)
            self._started = True
        logger.info("Worker pool started (workers=%d)", self.worker_count)

    def _run(self, worker_id: int) -> None:
        while True:
            job = self.jobs.get()
            if job is None:
                self.jobs.task_done()
                return
            try:
                self.pipeline.process_job(job, worker_id=worker_id)
            except Exception:
                logger.exception("worker %d crashed on job %s; continuing", worker_id, job.id)
            finally:
                self.jobs.task_done()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Let queued jobs finish, then stop every worker."""
        with self._lock:
            if not self._started:
                return
            for _ in self._threads:
                self.jobs.put_sentinel()
            threads = list(self._threads)
            self._threads = []
            self._started = False
        for t in threads:
            t.join(timeout=timeout)
        logger.info("Worker pool stopped")
