"""Canonical domain models (single source of truth).

This file is the one place where we define models used across:
- admission (webhook payloads, jobs)
- enrichment (Prometheus snapshots)
- inference (requests, per-backend results)
- storage and the query API (analysis records)

Design note:
- Webhook payloads ignore unknown keys because Grafana adds fields between versions.
- Record models serialize with snake_case keys; that is the shape `/analyses/latest` returns.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator

from receiver.llm.schemas import StructuredAnalysis


def _parse_timestamp(v: Any) -> Optional[datetime]:
    """
    Parse a webhook timestamp.

    Grafana/Alertmanager send `endsAt` as a "zero time" placeholder like
    0001-01-01T00:00:00Z for alerts that are still firing. Treat those (and blanks) as None.
    """
    if v is None:
        return None
    if isinstance(v, datetime):
        dt = v
    else:
        s = str(v).strip()
        if not s or s.startswith("0001-01-01"):
            return None
        dt = date_parser.isoparse(s)
    if dt.year <= 1:
        return None
    # Prevent naive/aware mixing bugs in downstream time math.
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _str_map(v: Any) -> Dict[str, str]:
    if v is None:
        return {}
    if not isinstance(v, dict):
        raise ValueError("expected an object of string values")
    return {str(k): "" if val is None else str(val) for k, val in v.items()}


class WebhookModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class GrafanaAlert(WebhookModel):
    status: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    starts_at: Optional[datetime] = Field(default=None, alias="startsAt")
    ends_at: Optional[datetime] = Field(default=None, alias="endsAt")
    generator_url: str = Field(default="", alias="generatorURL")
    fingerprint: str = ""
    silence_url: str = Field(default="", alias="silenceURL")
    dashboard_url: str = Field(default="", alias="dashboardURL")
    panel_url: str = Field(default="", alias="panelURL")

    @field_validator("starts_at", "ends_at", mode="before")
    @classmethod
    def _timestamps(cls, v: Any) -> Optional[datetime]:
        return _parse_timestamp(v)

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def _maps(cls, v: Any) -> Dict[str, str]:
        return _str_map(v)


class GrafanaWebhookPayload(WebhookModel):
    """One Grafana alert-group notification."""

    receiver: str = ""
    status: str = ""
    alerts: List[GrafanaAlert] = Field(default_factory=list)
    group_labels: Dict[str, str] = Field(default_factory=dict, alias="groupLabels")
    common_labels: Dict[str, str] = Field(default_factory=dict, alias="commonLabels")
    common_annotations: Dict[str, str] = Field(default_factory=dict, alias="commonAnnotations")
    external_url: str = Field(default="", alias="externalURL")
    version: str = ""
    group_key: str = Field(default="", alias="groupKey")
    truncated_alerts: int = Field(default=0, alias="truncatedAlerts")

    @field_validator("alerts", mode="before")
    @classmethod
    def _alerts(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("group_labels", "common_labels", "common_annotations", mode="before")
    @classmethod
    def _maps(cls, v: Any) -> Dict[str, str]:
        return _str_map(v)


def earliest_alert_time(payload: GrafanaWebhookPayload, fallback: datetime) -> datetime:
    """Earliest non-null `starts_at` across the group, else `fallback`."""
    starts = [a.starts_at for a in payload.alerts if a.starts_at is not None]
    return min(starts) if starts else fallback


_ID_REPLACE = str.maketrans({"/": "-", ":": "-", " ": "-", "\n": "-", "\t": "-"})


def sanitize_id(value: str) -> str:
    out = (value or "").strip().translate(_ID_REPLACE)
    return out or "alert"


class AnalysisJob(BaseModel):
    """
    A single unit of analysis work.

    Owned by exactly one worker from dequeue until its record is stored.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    received_at: datetime
    payload: GrafanaWebhookPayload


def new_job(payload: GrafanaWebhookPayload, *, now: Optional[datetime] = None) -> AnalysisJob:
    received_at = now or datetime.now(timezone.utc)
    return AnalysisJob(
        id=f"{time.time_ns()}-{sanitize_id(payload.group_key)}",
        received_at=received_at,
        payload=payload,
    )


class MetricQuery(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    description: str = ""
    query: str


class MetricSeries(BaseModel):
    labels: Dict[str, str] = Field(default_factory=dict)
    # Kept as text so float formatting never changes across transport.
    value: str = ""


class MetricSnapshot(BaseModel):
    name: str
    description: str = ""
    query: str
    result_type: str = ""
    summary: str = ""
    series: List[MetricSeries] = Field(default_factory=list)
    error: Optional[str] = None


class InferenceRequest(BaseModel):
    """Backend-agnostic prompt. Never mutated; use `model_copy(update=...)`."""

    model_config = ConfigDict(frozen=True)

    system_prompt: str
    user_prompt: str
    max_tokens: int
    temperature: float


class BackendResult(BaseModel):
    provider: str
    type: str
    model: str = ""
    duration_ms: int = 0
    response: Optional[str] = None
    parsed: Optional[StructuredAnalysis] = None
    error: Optional[str] = None


class AlertSummary(BaseModel):
    status: str
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


def summarize_alerts(alerts: List[GrafanaAlert]) -> List[AlertSummary]:
    return [
        AlertSummary(
            status=a.status,
            labels=dict(a.labels),
            annotations=dict(a.annotations),
            starts_at=a.starts_at,
            ends_at=a.ends_at,
        )
        for a in alerts
    ]


class AnalysisRecord(BaseModel):
    id: str
    received_at: datetime
    completed_at: Optional[datetime] = None
    alert_status: str = ""
    receiver: str = ""
    group_key: str = ""
    common_labels: Dict[str, str] = Field(default_factory=dict)
    common_annotations: Dict[str, str] = Field(default_factory=dict)
    alerts: List[AlertSummary] = Field(default_factory=list)
    metrics: List[MetricSnapshot] = Field(default_factory=list)
    providers: List[BackendResult] = Field(default_factory=list)
    # Set only when the job failed before (or outside of) fan-out.
    error: Optional[str] = None
