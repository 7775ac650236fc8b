from __future__ import annotations

import json
import time

from fastapi.testclient import TestClient

from receiver.config import Config


def _client(**cfg_overrides) -> TestClient:
    from receiver.api.webhook import build_service, create_app

    cfg = Config(**{"prometheus_url": "", "job_queue_size": 4, "worker_count": 1, **cfg_overrides})
    return TestClient(create_app(build_service(cfg)))


def _wait_for_items(client: TestClient, n: int, timeout: float = 5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        items = client.get("/analyses/latest").json()["items"]
        if len(items) >= n:
            return items
        time.sleep(0.02)
    raise AssertionError(f"expected {n} stored analyses")


def test_post_alert_is_accepted_with_202(make_payload) -> None:
    client = _client()
    resp = client.post("/alerts/grafana", json=make_payload())

    assert resp.status_code == 202
    body = resp.json()
    assert body["status"] == "queued"
    assert body["alerts"] == 2
    assert body["backends"] == []
    assert body["job_id"].endswith("-" + "{}-{site=\"lab-1\"}-{alertname=\"GatewayUnreachable\"}")


def test_invalid_bodies_are_rejected_with_400() -> None:
    client = _client()

    for raw in (b"{not json", b"", b'{"alerts": "nope"}', b"[1, 2, 3]"):
        resp = client.post("/alerts/grafana", content=raw, headers={"Content-Type": "application/json"})
        assert resp.status_code == 400, raw
        assert resp.json() == {"detail": "invalid json body"}


def test_wrong_method_is_405() -> None:
    client = _client()
    assert client.get("/alerts/grafana").status_code == 405


def test_queue_full_returns_503(make_payload) -> None:
    # Without entering the client context the startup hook never runs, so nothing drains the queue.
    client = _client(job_queue_size=1)

    assert client.post("/alerts/grafana", json=make_payload()).status_code == 202
    resp = client.post("/alerts/grafana", json=make_payload())
    assert resp.status_code == 503
    assert resp.json() == {"detail": "queue full"}


def test_accepted_alert_is_processed_and_listed(make_payload) -> None:
    with _client() as client:
        job_id = client.post("/alerts/grafana", json=make_payload()).json()["job_id"]
        items = _wait_for_items(client, 1)

    rec = items[0]
    assert rec["id"] == job_id
    assert rec["alert_status"] == "firing"
    assert rec["metrics"] == []
    assert rec["providers"][0]["provider"] == "none"
    assert rec["providers"][0]["error"] == "no LLM backends configured"
    assert rec["completed_at"] is not None


def test_latest_is_newest_first_and_bounded(make_payload) -> None:
    with _client(max_stored_analyses=2, worker_count=1) as client:
        for key in ("g1", "g2", "g3"):
            assert client.post("/alerts/grafana", json=make_payload(groupKey=key)).status_code == 202
        # A single worker processes jobs in arrival order.
        deadline = time.monotonic() + 5.0
        items = []
        while time.monotonic() < deadline:
            items = client.get("/analyses/latest").json()["items"]
            if items and items[0]["group_key"] == "g3":
                break
            time.sleep(0.02)

    assert [i["group_key"] for i in items] == ["g3", "g2"]


def test_health_endpoints(make_payload) -> None:
    client = _client(prometheus_url="http://prom:9090")
    client.post("/alerts/grafana", json=make_payload())

    for path in ("/healthz", "/readyz"):
        resp = client.get(path)
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "providers": [],
            "prometheus_url": "http://prom:9090",
            "queue_depth": 1,
            "worker_count": 1,
            "stored_analyses": 0,
        }


def test_metrics_endpoint_exposes_receiver_counters(make_payload) -> None:
    client = _client(job_queue_size=1)
    client.post("/alerts/grafana", json=make_payload())
    client.post("/alerts/grafana", json=make_payload(status="resolved"))

    resp = client.get("/metrics")
    assert resp.status_code == 200
    text = resp.text
    assert 'alert_receiver_alerts_received_total{status="firing"} 1.0' in text
    assert 'alert_receiver_alerts_received_total{status="resolved"} 1.0' in text
    assert 'alert_receiver_jobs_total{result="queue_full"} 1.0' in text
    assert "alert_receiver_queue_depth 1.0" in text


def test_structured_backend_answer_is_served(make_payload) -> None:
    from receiver.api.webhook import ReceiverService, create_app
    from receiver.api.worker import AnalysisPipeline, WorkerPool
    from receiver.llm.backends import apply_overrides
    from receiver.queue import JobQueue
    from receiver.storage.memory_store import RecordStore

    class _Backend:
        name = "fake-llm"
        type = "fake"
        model = "m"

        def prepare_request(self, request):
            return apply_overrides(request)

        def complete(self, request, *, timeout):
            return json.dumps({"summary": "WAN down", "likely_issue": "ISP", "confidence": 0.9})

    cfg = Config(prometheus_url="", worker_count=1)
    pipeline = AnalysisPipeline(backends=[_Backend()], store=RecordStore(5))
    jobs = JobQueue(4)
    service = ReceiverService(config=cfg, jobs=jobs, pipeline=pipeline, workers=WorkerPool(jobs, pipeline, worker_count=1))

    with TestClient(create_app(service)) as client:
        accepted = client.post("/alerts/grafana", json=make_payload()).json()
        items = _wait_for_items(client, 1)
        # No PrometheusObserver was wired, so no /metrics route.
        assert client.get("/metrics").status_code == 404

    assert accepted["backends"] == ["fake-llm"]
    parsed = items[0]["providers"][0]["parsed"]
    assert parsed["summary"] == "WAN down"
    assert parsed["confidence"] == 0.9
