"""
Unit tests for metrics collection.
"""

from prometheus_client import CollectorRegistry

from pgqueue.observability.metrics import MetricsCollector
from pgqueue.types.job import QueueStats


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_lifecycle_counters(self):
        registry = CollectorRegistry()
        metrics = MetricsCollector(registry=registry)

        metrics.record_job_enqueued("email")
        metrics.record_job_claimed("email")
        metrics.record_job_completed("email", "error", 0.2)
        metrics.record_jobs_requeued("stale", 3)

        assert registry.get_sample_value("jobs_enqueued_total", {"job_type": "email"}) == 1
        assert registry.get_sample_value("jobs_claimed_total", {"job_type": "email"}) == 1
        assert registry.get_sample_value(
            "jobs_completed_total", {"job_type": "email", "status": "error"}
        ) == 1
        assert registry.get_sample_value(
            "job_duration_seconds_count", {"job_type": "email", "status": "error"}
        ) == 1
        assert registry.get_sample_value("jobs_requeued_total", {"reason": "stale"}) == 3

    def test_queue_depth(self):
        registry = CollectorRegistry()
        metrics = MetricsCollector(registry=registry)

        metrics.update_queue_depth(QueueStats(waiting=5, running=1))

        assert registry.get_sample_value("job_queue_depth", {"status": "waiting"}) == 5
        assert registry.get_sample_value("job_queue_depth", {"status": "running"}) == 1
        assert registry.get_sample_value("job_queue_depth", {"status": "done"}) == 0

    def test_exposition(self):
        metrics = MetricsCollector(registry=CollectorRegistry())
        metrics.record_job_enqueued("email")

        assert b"jobs_enqueued_total" in metrics.get_metrics()
        assert metrics.get_content_type().startswith("text/plain")
