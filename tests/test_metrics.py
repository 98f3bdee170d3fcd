import uuid

import pytest

from ethlambda.metrics import (
    Histogram,
    IntCounter,
    IntCounterVec,
    IntGauge,
    IntGaugeVec,
    MetricError,
    Registry,
    TimingGuard,
    gather_default_metrics,
    register_histogram,
    register_int_counter,
    register_int_counter_vec,
    register_int_gauge,
    register_int_gauge_vec,
)


def unique(prefix):
    return f"{prefix}_{uuid.uuid4().hex}"


def test_counter_exposition():
    counter = IntCounter("events_total", "Number of events.")
    counter.inc(3)
    assert counter.expose() == (
        "# HELP events_total Number of events.\n"
        "# TYPE events_total counter\n"
        "events_total 3\n"
    )


def test_counter_rejects_negative_increment():
    counter = IntCounter("events_total", "Number of events.")
    with pytest.raises(MetricError):
        counter.inc(-1)
    assert counter.value == 0


def test_gauge_inc_dec_set():
    gauge = IntGauge("peers", "Peers.")
    gauge.inc()
    gauge.inc(4)
    gauge.dec(2)
    assert gauge.value == 3
    gauge.set(7)
    assert gauge.value == 7
    assert "peers 7" in gauge.expose().splitlines()


def test_invalid_name_and_empty_help():
    with pytest.raises(MetricError):
        IntCounter("1bad name", "Help.")
    with pytest.raises(MetricError):
        IntGauge("good_name", "")


def test_help_is_escaped():
    counter = IntCounter("x_total", "line\\one\nline two")
    assert counter.expose().splitlines()[0] == "# HELP x_total line\\\\one\\nline two"


def test_vec_label_cardinality():
    vec = IntCounterVec("conn_total", "Connections.", ["direction", "result"])
    with pytest.raises(MetricError):
        vec.with_label_values("inbound")


def test_vec_children_are_shared():
    vec = IntGaugeVec("connected", "Connected.", ["client"])
    first = vec.with_label_values("alpha")
    first.inc()
    vec.with_label_values("alpha").inc()
    assert vec.with_label_values("alpha") is first
    assert first.value == 2


def test_empty_vec_exposes_nothing():
    vec = IntCounterVec("conn_total", "Connections.", ["direction"])
    assert vec.expose() == ""


def test_vec_sample_lines():
    vec = IntCounterVec("conn_total", "Connections.", ["direction", "result"])
    vec.with_label_values("inbound", "success").inc()
    lines = vec.expose().splitlines()
    assert "# TYPE conn_total counter" in lines
    assert 'conn_total{direction="inbound",result="success"} 1' in lines


def test_label_value_escaping():
    vec = IntGaugeVec("named", "Named.", ["client"])
    vec.with_label_values('a"b').set(1)
    assert 'named{client="a\\"b"} 1' in vec.expose().splitlines()


def test_invalid_label_name():
    with pytest.raises(MetricError):
        IntCounterVec("x_total", "X.", ["bad-label"])


def test_histogram_buckets_are_cumulative():
    histogram = Histogram("latency_seconds", "Latency.", [1.0, 2.0])
    histogram.observe(0.5)
    histogram.observe(1.5)
    histogram.observe(5.0)
    assert histogram.count == 3
    assert histogram.sum == pytest.approx(0.5 + 1.5 + 5.0)
    bucket_lines = [line for line in histogram.expose().splitlines() if "_bucket" in line]
    counts = [int(line.rsplit(" ", 1)[1]) for line in bucket_lines]
    assert counts == sorted(counts)
    assert bucket_lines[-1] == 'latency_seconds_bucket{le="+Inf"} 3'
    assert "latency_seconds_count 3" in histogram.expose().splitlines()


def test_histogram_bad_buckets():
    with pytest.raises(MetricError):
        Histogram("h", "H.", [2.0, 1.0])


def test_histogram_default_buckets():
    histogram = Histogram("h", "H.")
    assert histogram.buckets[0] == 0.005
    assert histogram.buckets[-1] == 10.0


def test_registry_duplicate():
    registry = Registry()
    registry.register(IntCounter("a_total", "A."))
    with pytest.raises(MetricError):
        registry.register(IntGauge("a_total", "Again."))


def test_registry_gather_sorted():
    registry = Registry()
    registry.register(IntCounter("b_total", "B."))
    registry.register(IntCounter("a_total", "A."))
    text = registry.gather()
    assert text.index("a_total") < text.index("b_total")


def test_default_registry_helpers():
    counter = register_int_counter(unique("counter"), "Counter.")
    gauge = register_int_gauge(unique("gauge"), "Gauge.")
    histogram = register_histogram(unique("hist"), "Histogram.", None)
    counter_vec = register_int_counter_vec(unique("cvec"), "Vec.", ["kind"])
    gauge_vec = register_int_gauge_vec(unique("gvec"), "Vec.", ["kind"])
    counter.inc(5)
    gauge.set(9)
    histogram.observe(0.1)
    counter_vec.with_label_values("x").inc()
    gauge_vec.with_label_values("y").set(2)
    lines = gather_default_metrics().splitlines()
    assert f"{counter.name} 5" in lines
    assert f"{gauge.name} 9" in lines
    assert f"{histogram.name}_count 1" in lines
    assert f'{counter_vec.name}{{kind="x"}} 1' in lines
    assert f'{gauge_vec.name}{{kind="y"}} 2' in lines
    with pytest.raises(MetricError):
        register_int_counter(counter.name, "Duplicate.")


def test_timing_guard_observes_once():
    histogram = Histogram("timed_seconds", "Timed.")
    with TimingGuard(histogram):
        pass
    assert histogram.count == 1
    assert histogram.sum >= 0


def test_timing_guard_observes_on_error():
    histogram = Histogram("timed_seconds", "Timed.")
    with pytest.raises(RuntimeError):
        with TimingGuard(histogram):
            raise RuntimeError("boom")
    assert histogram.count == 1