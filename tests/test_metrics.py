import time

import pytest

from lomsvc import metrics
from lomsvc.metrics import DbMetrics, RequestType, measure_metrics


def test_request_type_labels():
    assert RequestType.FIND.value == "select"
    assert RequestType.INSERT.value == "insert"
    assert RequestType("update") is RequestType.UPDATE


def test_measure_counts_requests():
    m = DbMetrics()
    start = time.monotonic()
    m.measure(RequestType.INSERT, start)
    m.measure(RequestType.INSERT, start)
    m.measure(RequestType.UPDATE, start)
    assert m.request_total(RequestType.INSERT) == 2
    assert m.request_total(RequestType.UPDATE) == 1
    assert m.request_total(RequestType.DELETE) == 0


def test_measure_records_non_negative_duration():
    m = DbMetrics()
    start = time.monotonic()
    elapsed = m.measure(RequestType.FIND, start)
    recorded = m.durations(RequestType.FIND)
    assert recorded == [elapsed]
    assert elapsed >= 0


def test_durations_labelled_by_error():
    m = DbMetrics()
    start = time.monotonic()
    err = RuntimeError("boom")
    m.measure(RequestType.UPDATE, start, err)
    m.measure(RequestType.UPDATE, start)
    assert len(m.durations(RequestType.UPDATE, err)) == 1
    assert len(m.durations(RequestType.UPDATE, "boom")) == 1
    assert len(m.durations(RequestType.UPDATE)) == 1
    assert m.request_total(RequestType.UPDATE) == 2


def test_measure_accepts_label_string():
    m = DbMetrics()
    m.measure("delete", time.monotonic())
    assert m.request_total(RequestType.DELETE) == 1


def test_unknown_label_rejected():
    m = DbMetrics()
    with pytest.raises(ValueError):
        m.measure("upsert", time.monotonic())


def test_measure_metrics_uses_shared_instance():
    before = metrics.metric.request_total(RequestType.DELETE)
    measure_metrics(RequestType.DELETE, time.monotonic())
    assert metrics.metric.request_total(RequestType.DELETE) == before + 1