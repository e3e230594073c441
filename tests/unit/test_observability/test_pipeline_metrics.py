"""Tests for Prometheus metrics"""

from pretackler.observability.metrics import (
    ATTEMPTS_TOTAL,
    CHANNEL_WORKERS,
    ITEMS_PROCESSED,
    REGISTRY,
    ROUTE_DECISIONS,
    get_metrics_text,
    write_metrics_file,
)


def sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_counter_increments():
    labels = {"channel": "long", "status": "succeeded"}
    before = sample("pretackler_items_processed_total", labels)
    ITEMS_PROCESSED.labels(**labels).inc()
    assert sample("pretackler_items_processed_total", labels) == before + 1


def test_gauge_set():
    CHANNEL_WORKERS.labels(channel="normal").set(5)
    assert sample("pretackler_channel_workers", {"channel": "normal"}) == 5


def test_text_exposition():
    ROUTE_DECISIONS.labels(channel="normal", threshold="none").inc()
    ATTEMPTS_TOTAL.labels(channel="normal", outcome="success").inc()
    text = get_metrics_text().decode("utf-8")
    assert "pretackler_route_decisions_total" in text
    assert "pretackler_attempts_total" in text


def test_write_metrics_file(tmp_path):
    path = write_metrics_file(tmp_path / "metrics" / "run.prom")
    assert path.exists()
    assert "pretackler_items_processed_total" in path.read_text(encoding="utf-8")
