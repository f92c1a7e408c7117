from mapquery.observability.metrics import MetricsRegistry, record_duration


def test_summary_groups_counters_by_stage():
    metrics = MetricsRegistry()
    metrics.incr("tags_matched", 3)
    metrics.incr("directives_applied")
    metrics.incr("directives_invalid", 2)
    metrics.incr("http_2xx")

    summary = metrics.summary()
    assert summary["extraction"]["tags_matched"] == 3
    assert summary["viewport"]["directives_seen"] == 3
    assert summary["services"]["http_2xx"] == 1
    assert "other" not in summary


def test_ad_hoc_counters_land_in_other():
    metrics = MetricsRegistry()
    metrics.incr("replay_lines", 4)
    assert metrics.summary()["other"] == {"replay_lines": 4}
    assert metrics.get("never_touched") == 0


def test_record_duration_adds_to_counter():
    metrics = MetricsRegistry()
    with record_duration(metrics, "query_duration_ms"):
        pass
    assert metrics.get("query_duration_ms") >= 0
    assert "query_duration_ms" in metrics.snapshot()
