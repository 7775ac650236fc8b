from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from typing import Optional

from receiver.core.models import AnalysisJob, GrafanaWebhookPayload, new_job
from receiver.core.observer import NoopObserver, Observer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionResult:
    job_id: str
    accepted: bool


class JobQueue:
    """
    Bounded hand-off between the webhook and the worker pool.

    Capacity is fixed at construction. `submit` never blocks: a full queue rejects the
    job immediately (backpressure) and already-queued jobs are left untouched.
    """

    def __init__(self, capacity: int, *, observer: Optional[Observer] = None) -> None:
        if capacity < 1:
            raise ValueError("queue capacity must be >= 1")
        self.capacity = capacity
        self.observer = observer or NoopObserver()
        self._q: "queue.Queue[Optional[AnalysisJob]]" = queue.Queue(maxsize=capacity)

    def submit(self, payload: GrafanaWebhookPayload) -> AdmissionResult:
        self.observer.alert_received(payload.status)
        job = new_job(payload)
        try:
            self._q.put_nowait(job)
        except queue.Full:
            self.observer.job_result("queue_full")
            logger.warning("Queue full, rejecting alert group: group_key=%s", payload.group_key)
            return AdmissionResult(job_id=job.id, accepted=False)

        self.observer.queue_depth_changed(1)
        logger.info(
            "alert queued: job_id=%s receiver=%s status=%s alerts=%d",
            job.id,
            payload.receiver,
            payload.status,
            len(payload.alerts),
        )
        return AdmissionResult(job_id=job.id, accepted=True)

    def get(self, timeout: Optional[float] = None) -> Optional[AnalysisJob]:
        """
        Block until a job is available. Returns None for a shutdown sentinel.

        Raises queue.Empty if `timeout` elapses first.
        """
        job = self._q.get(timeout=timeout)
        if job is not None:
            self.observer.queue_depth_changed(-1)
        return job

    def put_sentinel(self) -> None:
        # Blocking on purpose: shutdown must not drop the stop signal.
        self._q.put(None)

    def task_done(self) -> None:
        self._q.task_done()

    def join(self) -> None:
        """Block until every submitted job has been fully processed."""
        self._q.join()

    def depth(self) -> int:
        return self._q.qsize()
