"""
Concurrent multi-backend dispatch.

One request goes to every configured backend at once. The join is wait-all: every
slot is filled (success or error) before returning, and slots keep configuration
order regardless of completion order. A backend still running when the shared
timeout expires is recorded as a timeout and abandoned; its siblings are unaffected.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import List, Optional, Sequence

from receiver.core.errors import BackendError
from receiver.core.models import BackendResult, InferenceRequest
from receiver.core.observer import NoopObserver, Observer
from receiver.llm.backends import Backend
from receiver.llm.schemas import parse_structured_analysis

logger = logging.getLogger(__name__)

NO_BACKENDS_ERROR = "no LLM backends configured"


def no_backends_result() -> BackendResult:
    return BackendResult(provider="none", type="none", error=NO_BACKENDS_ERROR)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _call_backend(backend: Backend, request: InferenceRequest, timeout: float) -> BackendResult:
    start = time.monotonic()
    result = BackendResult(provider=backend.name, type=backend.type, model=backend.model)
    try:
        response = backend.complete(backend.prepare_request(request), timeout=timeout)
    except BackendError as e:
        result.duration_ms = _elapsed_ms(start)
        result.error = str(e)
        return result
    except Exception as e:
        # Adapter bugs stay scoped to this backend's slot.
        logger.exception("Backend %s raised unexpectedly", backend.name)
        result.duration_ms = _elapsed_ms(start)
        result.error = f"{type(e).__name__}: {e}"
        return result

    result.duration_ms = _elapsed_ms(start)
    result.response = response
    result.parsed = parse_structured_analysis(response)
    return result


def run_fanout(
    request: InferenceRequest,
    backends: Sequence[Backend],
    *,
    timeout: float,
    observer: Optional[Observer] = None,
) -> List[BackendResult]:
    """
    Dispatch `request` to all backends concurrently and wait for every one.

    Returns exactly one result per backend, in configuration order. With no backends
    configured, returns a single synthetic "none" result instead of an empty list.
    """
    obs = observer or NoopObserver()
    if not backends:
        return [no_backends_result()]

    out: List[BackendResult] = []
    started = time.monotonic()
    executor = ThreadPoolExecutor(max_workers=len(backends), thread_name_prefix="fanout")
    try:
        futures: List[Future] = [executor.submit(_call_backend, b, request, timeout) for b in backends]
        wait(futures, timeout=timeout)
        for backend, fut in zip(backends, futures):
            if fut.done():
                out.append(fut.result())
                continue
            fut.cancel()
            out.append(
                BackendResult(
                    provider=backend.name,
                    type=backend.type,
                    model=backend.model,
                    duration_ms=_elapsed_ms(started),
                    error=f"{backend.type} request timed out after {timeout:g}s",
                )
            )
    finally:
        # Do not block on abandoned calls; their own transport timeouts end them.
        executor.shutdown(wait=False, cancel_futures=True)

    for r in out:
        if r.error:
            obs.provider_request(r.provider, "error")
            logger.warning("LLM backend failed: provider=%s error=%s", r.provider, r.error)
        else:
            obs.provider_request(r.provider, "success")
    return out
