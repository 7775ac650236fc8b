from __future__ import annotations


def test_prometheus_observer_uses_its_own_registry() -> None:
    from receiver.core.observer import Observer
    from receiver.metrics import PrometheusObserver

    a = PrometheusObserver()
    b = PrometheusObserver()
    assert isinstance(a, Observer)

    a.alert_received("firing")
    a.queue_depth_changed(1)
    a.queue_depth_changed(1)
    a.queue_depth_changed(-1)
    a.job_result("processed")
    a.job_duration(0.25)
    a.provider_request("primary", "error")
    a.prometheus_query("dns_timeouts", "success")

    get = a.registry.get_sample_value
    assert get("alert_receiver_alerts_received_total", {"status": "firing"}) == 1.0
    assert get("alert_receiver_queue_depth") == 1.0
    assert get("alert_receiver_jobs_total", {"result": "processed"}) == 1.0
    assert get("alert_receiver_job_duration_seconds_count") == 1.0
    assert get("alert_receiver_provider_requests_total", {"provider": "primary", "result": "error"}) == 1.0
    assert get("alert_receiver_prometheus_queries_total", {"query": "dns_timeouts", "result": "success"}) == 1.0

    assert b.registry.get_sample_value("alert_receiver_alerts_received_total", {"status": "firing"}) is None
    assert b"alert_receiver_queue_depth 1.0" in a.render()
