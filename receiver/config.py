"""
Environment configuration for the receiver.

Env:
- PORT (default: 9094)
- PROMETHEUS_URL (default: http://host.k3d.internal:9090)
- PROMETHEUS_LOOKBACK (default: 30m) evidence is queried at earliest alert start + lookback
- PROMETHEUS_TIMEOUT (default: 10s)
- LLM_TIMEOUT (default: 30s) per-backend call timeout
- JOB_QUEUE_SIZE (default: 32)
- WORKER_CONCURRENCY (default: 2)
- MAX_STORED_ANALYSES (default: 25)
- LLM_BACKENDS_JSON (default: []) ordered list of backend objects
- METRIC_QUERIES_JSON (optional) ordered list of {name, description, query}
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError

from receiver.core.errors import ConfigError
from receiver.core.models import MetricQuery
from receiver.core.time_window import parse_duration, prom_duration
from receiver.llm.prompt import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE


class BackendConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = ""
    type: str = ""
    model: str = ""
    base_url: str = ""
    api_key_env: str = ""
    region: str = ""
    system_prompt: str = ""
    max_tokens: int = 0
    temperature: float = 0.0


@dataclass(frozen=True)
class Config:
    port: int = 9094
    prometheus_url: str = "http://host.k3d.internal:9090"
    prometheus_lookback: timedelta = timedelta(minutes=30)
    prometheus_timeout: timedelta = timedelta(seconds=10)
    llm_timeout: timedelta = timedelta(seconds=30)
    job_queue_size: int = 32
    worker_count: int = 2
    max_stored_analyses: int = 25
    backends: Tuple[BackendConfig, ...] = ()
    metric_queries: Tuple[MetricQuery, ...] = field(default_factory=tuple)


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _env_duration(name: str, default: timedelta) -> timedelta:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return parse_duration(raw)
    except ValueError:
        return default


def _load_json_list(raw: str, *, env_name: str) -> List[Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"parse {env_name}: {e}") from e
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError(f"parse {env_name}: expected a JSON array")
    return data


def parse_backends(raw: str) -> Tuple[BackendConfig, ...]:
    """Parse LLM_BACKENDS_JSON and apply per-backend defaults."""
    out: List[BackendConfig] = []
    for item in _load_json_list(raw, env_name="LLM_BACKENDS_JSON"):
        try:
            b = BackendConfig.model_validate(item)
        except ValidationError as e:
            raise ConfigError(f"parse LLM_BACKENDS_JSON: {e}") from e
        btype = b.type.strip().lower() or "openai"
        out.append(
            b.model_copy(
                update={
                    "type": btype,
                    "name": b.name or btype,
                    "max_tokens": b.max_tokens or DEFAULT_MAX_TOKENS,
                    "temperature": b.temperature or DEFAULT_TEMPERATURE,
                }
            )
        )
    return tuple(out)


def parse_metric_queries(raw: str) -> Tuple[MetricQuery, ...]:
    out: List[MetricQuery] = []
    for item in _load_json_list(raw, env_name="METRIC_QUERIES_JSON"):
        try:
            out.append(MetricQuery.model_validate(item))
        except ValidationError as e:
            raise ConfigError(f"parse METRIC_QUERIES_JSON: {e}") from e
    return tuple(out)


_UPLINK = 'device=~"eth0|wlan0|en0"'


def default_metric_queries(lookback: timedelta) -> Tuple[MetricQuery, ...]:
    """Built-in evidence set: reachability, DNS, jitter, packet loss and link-layer signals."""
    lb = prom_duration(lookback)
    ne = f'job="node-exporter",{_UPLINK}'
    specs = [
        ("gateway_reachable_avg", "Average gateway reachability over the lookback window",
         f'avg_over_time(gateway_reachable{{job="gateway-monitor"}}[{lb}])'),
        ("wan_reachable_avg", "Average WAN reachability over the lookback window",
         f'avg_over_time(wan_reachable{{job="gateway-monitor"}}[{lb}])'),
        ("wifi_probe_up_avg", "Average WiFi probe success over the lookback window",
         f'avg_over_time(wifi_probe_up{{job="wifi-probe"}}[{lb}])'),
        ("wifi_probe_errors", "WiFi probe errors accumulated over the lookback window",
         f'increase(wifi_probe_errors_total{{job="wifi-probe"}}[{lb}])'),
        ("jitter_avg_ms", "Average jitter in milliseconds over the lookback window",
         f'avg_over_time(network_jitter_ms{{job="jitter-probe"}}[{lb}])'),
        ("jitter_max_ms", "Worst jitter in milliseconds over the lookback window",
         f'max_over_time(network_jitter_ms{{job="jitter-probe"}}[{lb}])'),
        ("latency_p99_avg_ms", "Average p99 latency over the lookback window",
         f'avg_over_time(latency_p99{{job="jitter-probe"}}[{lb}])'),
        ("latency_p99_max_ms", "Worst p99 latency over the lookback window",
         f'max_over_time(latency_p99{{job="jitter-probe"}}[{lb}])'),
        ("packet_loss_total", "Packet loss accumulated over the lookback window",
         f'increase(packet_loss_total{{job="jitter-probe"}}[{lb}])'),
        ("packet_loss_bursts", "Packet loss bursts accumulated over the lookback window",
         f'increase(packet_loss_burst_total{{job="jitter-probe"}}[{lb}])'),
        ("dns_timeouts", "DNS timeouts accumulated over the lookback window",
         f'increase(dns_probe_timeouts_total{{job="dns-probe"}}[{lb}])'),
        ("dns_latency_avg_seconds", "Average DNS latency over the lookback window",
         f'avg_over_time(dns_probe_latency_seconds{{job="dns-probe"}}[{lb}])'),
        ("failure_domain_events", "Gateway monitor domain transitions over the lookback window",
         f'increase(failure_domain_events_total{{job="gateway-monitor"}}[{lb}])'),
        ("carrier_changes", "Host carrier changes on likely uplink devices",
         f"increase(node_network_carrier_changes_total{{{ne}}}[{lb}])"),
        ("link_drops", "Receive and transmit drops on likely uplink devices",
         f"rate(node_network_receive_drop_total{{{ne}}}[{lb}]) + rate(node_network_transmit_drop_total{{{ne}}}[{lb}])"),
        ("link_errors", "Receive and transmit errors on likely uplink devices",
         f"rate(node_network_receive_errs_total{{{ne}}}[{lb}]) + rate(node_network_transmit_errs_total{{{ne}}}[{lb}])"),
        ("tcp_retransmits", "TCP retransmit rate from node-exporter",
         f'rate(node_netstat_Tcp_RetransSegs{{job="node-exporter"}}[{lb}])'),
        ("softnet_squeezed", "Softnet times squeezed rate",
         f'sum(rate(node_softnet_times_squeezed_total{{job="node-exporter"}}[{lb}]))'),
        ("softnet_dropped", "Softnet drop rate",
         f'sum(rate(node_softnet_dropped_total{{job="node-exporter"}}[{lb}]))'),
        ("uplink_rx_bps", "Receive throughput on likely uplink devices",
         f"rate(node_network_receive_bytes_total{{{ne}}}[{lb}])"),
        ("uplink_tx_bps", "Transmit throughput on likely uplink devices",
         f"rate(node_network_transmit_bytes_total{{{ne}}}[{lb}])"),
    ]
    return tuple(MetricQuery(name=n, description=d, query=q) for n, d, q in specs)


def load_config() -> Config:
    """Read the environment once at startup. Raises ConfigError on invalid JSON lists."""
    lookback = _env_duration("PROMETHEUS_LOOKBACK", timedelta(minutes=30))

    metric_queries: Optional[Tuple[MetricQuery, ...]] = None
    raw_queries = (os.getenv("METRIC_QUERIES_JSON") or "").strip()
    if raw_queries:
        metric_queries = parse_metric_queries(raw_queries)

    return Config(
        port=_env_int("PORT", 9094),
        prometheus_url=_env_str("PROMETHEUS_URL", "http://host.k3d.internal:9090"),
        prometheus_lookback=lookback,
        prometheus_timeout=_env_duration("PROMETHEUS_TIMEOUT", timedelta(seconds=10)),
        llm_timeout=_env_duration("LLM_TIMEOUT", timedelta(seconds=30)),
        job_queue_size=max(1, _env_int("JOB_QUEUE_SIZE", 32)),
        worker_count=max(1, _env_int("WORKER_CONCURRENCY", 2)),
        max_stored_analyses=max(1, _env_int("MAX_STORED_ANALYSES", 25)),
        backends=parse_backends(_env_str("LLM_BACKENDS_JSON", "[]")),
        metric_queries=metric_queries if metric_queries is not None else default_metric_queries(lookback),
    )
