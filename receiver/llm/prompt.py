from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, Dict, Sequence

from receiver.core.errors import PromptBuildError
from receiver.core.models import AnalysisJob, InferenceRequest, MetricSnapshot, summarize_alerts
from receiver.core.time_window import format_duration

DEFAULT_MAX_TOKENS = 900
DEFAULT_TEMPERATURE = 0.2

DEFAULT_SYSTEM_PROMPT = """You analyze edge network alerts using only the provided evidence.
Return strict JSON with this shape:
{
  "summary": "short incident summary",
  "likely_issue": "most likely root cause",
  "confidence": 0.0,
  "evidence": ["bullet evidence"],
  "potential_fix": ["ordered remediation ideas"],
  "next_checks": ["additional checks if evidence is insufficient"]
}
Do not invent radio-level evidence if it is not present in the metrics."""

USER_PROMPT_PREFIX = (
    "Evaluate this Grafana alert incident and summarize the issue, likely cause, "
    "and potential fix using only the evidence below.\n\n"
)


def _prompt_payload(job: AnalysisJob, metrics: Sequence[MetricSnapshot], lookback: timedelta) -> Dict[str, Any]:
    p = job.payload
    return {
        "received_at": job.received_at.isoformat(),
        "alert_status": p.status,
        "receiver": p.receiver,
        "group_key": p.group_key,
        "group_labels": dict(p.group_labels),
        "common_labels": dict(p.common_labels),
        "common_annotations": dict(p.common_annotations),
        "alerts": [a.model_dump(mode="json") for a in summarize_alerts(p.alerts)],
        "metric_snapshots": [m.model_dump(mode="json", exclude_none=True) for m in metrics],
        "analysis_window": format_duration(lookback),
    }


def build_inference_request(
    job: AnalysisJob, metrics: Sequence[MetricSnapshot], lookback: timedelta
) -> InferenceRequest:
    """
    Render a job and its evidence into a backend-agnostic request.

    Deterministic for the same inputs. Only the snapshots passed in are serialized;
    nothing else is added to the evidence.
    """
    try:
        body = json.dumps(_prompt_payload(job, metrics, lookback), indent=2)
    except (TypeError, ValueError) as e:
        raise PromptBuildError(f"marshal prompt payload: {e}") from e

    return InferenceRequest(
        system_prompt=DEFAULT_SYSTEM_PROMPT,
        user_prompt=USER_PROMPT_PREFIX + body,
        max_tokens=DEFAULT_MAX_TOKENS,
        temperature=DEFAULT_TEMPERATURE,
    )
