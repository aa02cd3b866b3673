"""Tests for decoding admin socket metric dumps."""
import json

import pytest

from cmt.decoder import MetricDecoder, Observation, ValueKind, decode, format_bound
from cmt.errors import MalformedMetrics, UnexpectedValueType
from cmt.keys import UnifiedKey


def _as_tuples(observations):
    return [(o.key.token, o.kind, o.value) for o in observations]


def test_scalar_integer_with_labels(dump):
    sample = decode(dump({"LBA_alloc_extents": {"shard": "0", "value": 86}}))
    assert sample.floats == []
    assert _as_tuples(sample.ints) == [("LBA_alloc_extents&shard=0", ValueKind.INT, 86)]
    assert isinstance(sample.ints[0].value, int)


def test_non_integral_number_is_float(dump):
    sample = decode(dump({"reactor_utilization": {"shard": "0", "value": 12.5}}))
    assert _as_tuples(sample.floats) == [("reactor_utilization&shard=0", ValueKind.FLOAT, 12.5)]


def test_ratio_name_coerces_integral_value_to_float(dump):
    sample = decode(dump({"cache_hit_ratio": {"value": 1}}))
    assert sample.ints == []
    obs = sample.floats[0]
    assert obs.kind == ValueKind.FLOAT
    assert obs.value == 1.0
    assert isinstance(obs.value, float)


def test_histogram_expansion(dump):
    buffer = dump({
        "foo": {
            "value": {
                "sum": 10,
                "count": 5,
                "buckets": [{"le": "1", "count": 2}, {"le": "+Inf", "count": 5}],
            }
        }
    })
    sample = decode(buffer)
    assert len(sample) == 4
    assert _as_tuples(sample.ints) == [
        ("foo", ValueKind.INT, 5),
        ("foo&bucket=0&le=1", ValueKind.INT, 2),
        ("foo&bucket=1&le=+Inf", ValueKind.INT, 5),
    ]
    assert _as_tuples(sample.floats) == [("foo", ValueKind.FLOAT, 10.0)]
    assert isinstance(sample.floats[0].value, float)


def test_histogram_fields_beside_labels(dump):
    buffer = dump({
        "latency": {
            "shard": "1",
            "sum": 0.5,
            "count": 1,
            "buckets": [{"le": 0.25, "count": 0}, {"le": 1.0, "count": 1}],
        }
    })
    sample = decode(buffer)
    assert [o.key.token for o in sample.ints] == [
        "latency&bucket=0&le=0.25&shard=1",
        "latency&bucket=1&le=1&shard=1",
        "latency&shard=1",
    ]
    assert sample.floats == [Observation.real(UnifiedKey("latency&shard=1"), 0.5)]


def test_histogram_count_label_policy(dump):
    buffer = dump({"foo": {"value": {"sum": 1, "count": 1, "buckets": []}}})
    sample = MetricDecoder(count_label="count").decode(buffer)
    assert _as_tuples(sample.ints) == [("foo&bucket=count", ValueKind.INT, 1)]
    assert _as_tuples(sample.floats) == [("foo", ValueKind.FLOAT, 1.0)]


def test_bucket_order_follows_input(dump):
    buffer = dump({"foo": {"value": {"sum": 0, "count": 0, "buckets": [
        {"le": 100, "count": 0}, {"le": 5, "count": 0},
    ]}}})
    labels = [o.key.labels for o in decode(buffer).ints if "le" in o.key.labels]
    assert [(l["bucket"], l["le"]) for l in labels] == [("0", "100"), ("1", "5")]


def test_format_bound():
    assert format_bound(1) == "1"
    assert format_bound(1.0) == "1"
    assert format_bound(0.001) == "0.001"
    assert format_bound(2.5) == "2.5"
    assert format_bound("+Inf") == "+Inf"
    with pytest.raises(MalformedMetrics):
        format_bound(None)


def test_device_id_keeps_first_byte(dump):
    sample = decode(dump({"segment_size": {"device_id": "0x10", "value": 4}}))
    assert sample.ints[0].key.labels == {"device_id": str(ord("0"))}


def test_label_that_is_not_utf8_is_malformed(dump):
    with pytest.raises(MalformedMetrics):
        decode(dump({"segment_size": {"device_id": "\ud800", "value": 4}}))
    with pytest.raises(MalformedMetrics):
        decode(dump({"segment_size": {"shard": "\udcff", "value": 4}}))


def test_observations_are_sorted_by_key(dump):
    sample = decode(dump(
        {"b": {"value": 1}},
        {"a": {"shard": "1", "value": 2}},
        {"a": {"shard": "0", "value": 3}},
    ))
    assert [o.key.token for o in sample.observations] == ["a&shard=0", "a&shard=1", "b"]


def test_observations_put_ints_before_floats(dump):
    sample = decode(dump({"a_ratio": {"value": 1}}, {"b": {"value": 2}}))
    assert [o.kind for o in sample.observations] == [ValueKind.INT, ValueKind.FLOAT]


def test_two_field_element_is_malformed(dump):
    with pytest.raises(MalformedMetrics):
        decode(dump({"a": {"value": 1}, "b": {"value": 2}}))


@pytest.mark.parametrize("buffer", [
    b"not json",
    b"[]",
    b'{"other": []}',
    b'{"metrics": {}}',
    b'{"metrics": [1]}',
    b'{"metrics": [{"a": 1}]}',
    b'{"metrics": [{"a": {"shard": "0"}}]}',
    b'{"metrics": [{"a": {"shard": 0, "value": 1}}]}',
])
def test_malformed_documents(buffer):
    with pytest.raises(MalformedMetrics):
        decode(buffer)


@pytest.mark.parametrize("value", ["12", True, None, [1, 2]])
def test_unexpected_value_type(dump, value):
    with pytest.raises(UnexpectedValueType):
        decode(dump({"a": {"value": value}}))


def test_malformed_histogram(dump):
    with pytest.raises(MalformedMetrics):
        decode(dump({"a": {"value": {"sum": 1, "buckets": []}}}))
    with pytest.raises(MalformedMetrics):
        decode(dump({"a": {"value": {"sum": 1, "count": 1, "buckets": [{"count": 1}]}}}))


def test_one_bad_metric_aborts_the_sample(dump):
    with pytest.raises(UnexpectedValueType):
        decode(dump({"good": {"value": 1}}, {"bad": {"value": "x"}}))


def test_duplicate_metric_is_malformed(dump):
    with pytest.raises(MalformedMetrics):
        decode(dump({"a": {"shard": "0", "value": 1}}, {"a": {"shard": "0", "value": 2}}))


def test_empty_metrics_array():
    sample = decode(json.dumps({"metrics": []}).encode())
    assert len(sample) == 0
