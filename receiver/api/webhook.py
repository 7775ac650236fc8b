"""
Grafana webhook server.

Receives Grafana alert notifications, queues one analysis job per notification and
returns immediately. Workers enrich each job with Prometheus evidence and fan it out
to every configured LLM backend; finished records are served from /analyses/latest.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from receiver.api.worker import AnalysisPipeline, WorkerPool, load_payload, pipeline_from_config
from receiver.config import Config, load_config
from receiver.core.observer import Observer
from receiver.llm.backends import backend_names
from receiver.metrics import PrometheusObserver
from receiver.queue.base import JobQueue

logger = logging.getLogger(__name__)


@dataclass
class ReceiverService:
    """Long-lived collaborators shared by the HTTP handlers and the worker pool."""

    config: Config
    jobs: JobQueue
    pipeline: AnalysisPipeline
    workers: WorkerPool
    metrics: Optional[PrometheusObserver] = None

    def health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "providers": backend_names(self.pipeline.backends),
            "prometheus_url": self.config.prometheus_url,
            "queue_depth": self.jobs.depth(),
            "worker_count": self.workers.worker_count,
            "stored_analyses": len(self.pipeline.store),
        }


def build_service(cfg: Config, *, observer: Optional[Observer] = None) -> ReceiverService:
    """
    Wire queue, pipeline and workers from configuration.

    Without an explicit observer, a PrometheusObserver is created and exposed on /metrics.
    Raises BackendConfigError for a misconfigured backend.
    """
    metrics: Optional[PrometheusObserver] = None
    if observer is None:
        metrics = PrometheusObserver()
        observer = metrics
    pipeline = pipeline_from_config(cfg, observer=observer)
    jobs = JobQueue(cfg.job_queue_size, observer=observer)
    workers = WorkerPool(jobs, pipeline, worker_count=cfg.worker_count)
    return ReceiverService(config=cfg, jobs=jobs, pipeline=pipeline, workers=workers, metrics=metrics)


def create_app(service: ReceiverService) -> FastAPI:
    app = FastAPI(title="Grafana alert receiver")
    app.state.service = service

    @app.on_event("startup")
    def _startup_workers() -> None:
        service.workers.start()

    @app.on_event("shutdown")
    def _shutdown_workers() -> None:
        service.workers.stop(timeout=5.0)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        logger.debug(
            "%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, time.time() - start_time
        )
        return response

    @app.post("/alerts/grafana")
    async def grafana_alerts(request: Request) -> JSONResponse:
        body = await request.body()
        try:
            payload = load_payload(body)
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors.
            logger.info("Rejecting webhook body: %s", str(e).splitlines()[0] if str(e) else type(e).__name__)
            raise HTTPException(status_code=400, detail="invalid json body")

        admission = service.jobs.submit(payload)
        if not admission.accepted:
            raise HTTPException(status_code=503, detail="queue full")

        return JSONResponse(
            status_code=202,
            content={
                "job_id": admission.job_id,
                "status": "queued",
                "alerts": len(payload.alerts),
                "backends": backend_names(service.pipeline.backends),
            },
        )

    @app.get("/analyses/latest")
    def latest_analyses() -> Dict[str, Any]:
        return {"items": [r.model_dump(mode="json") for r in service.pipeline.store.list()]}

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return service.health()

    @app.get("/readyz")
    def readyz() -> Dict[str, Any]:
        return service.health()

    if service.metrics is not None:
        metrics = service.metrics

        @app.get("/metrics")
        def prometheus_metrics() -> Response:
            return Response(content=metrics.render(), media_type=metrics.content_type)

    return app


def configure_logging() -> str:
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return log_level


def run(host: str = "0.0.0.0", port: Optional[int] = None) -> None:
    import uvicorn

    log_level = configure_logging()
    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    cfg = load_config()
    service = build_service(cfg)
    app = create_app(service)

    listen_port = port if port is not None else cfg.port
    logger.info(
        "Starting alert receiver on %s:%d (workers=%d queue=%d backends=%s)",
        host,
        listen_port,
        cfg.worker_count,
        cfg.job_queue_size,
        backend_names(service.pipeline.backends),
    )
    uvicorn.run(app, host=host, port=listen_port, log_level=uvicorn_log_level)
