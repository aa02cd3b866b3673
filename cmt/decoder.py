"""Decoding of admin socket metric dumps into typed observations."""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import numpy as np

from cmt.errors import MalformedMetrics, UnexpectedValueType
from cmt.keys import MetricInfo, UnifiedKey, encode

logger = logging.getLogger(__name__)

HISTOGRAM_FIELDS = ("sum", "count", "buckets")


class ValueKind(str, Enum):
    """Storage class of an observation."""
    INT = "int"
    FLOAT = "float"


class ValueShape(Enum):
    """Closed set of value shapes found in a dump."""
    SCALAR_INT = "scalar_int"
    SCALAR_FLOAT = "scalar_float"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class Observation:
    """One typed value for one unified key."""
    key: UnifiedKey
    kind: ValueKind
    value: Union[int, float]

    @classmethod
    def integer(cls, key: UnifiedKey, value: int) -> "Observation":
        return cls(key, ValueKind.INT, int(value))

    @classmethod
    def real(cls, key: UnifiedKey, value: Union[int, float]) -> "Observation":
        return cls(key, ValueKind.FLOAT, float(value))


@dataclass
class Sample:
    """All observations decoded from one dump, each kind sorted by key."""
    ints: List[Observation] = field(default_factory=list)
    floats: List[Observation] = field(default_factory=list)

    @property
    def observations(self) -> List[Observation]:
        """Integer observations followed by float observations."""
        return self.ints + self.floats

    def __len__(self) -> int:
        return len(self.ints) + len(self.floats)


def _utf8(text: str, what: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise MalformedMetrics(f"{what} is not valid UTF-8: {e}")


def _is_integral(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return _is_integral(value) or isinstance(value, float)


def classify(value: Any) -> ValueShape:
    """Map a JSON value to its shape."""
    if _is_integral(value):
        return ValueShape.SCALAR_INT
    if isinstance(value, float):
        return ValueShape.SCALAR_FLOAT
    if isinstance(value, dict):
        return ValueShape.HISTOGRAM
    raise UnexpectedValueType(f"unexpected value type: {type(value).__name__}")


def format_bound(le: Any) -> str:
    """Render a bucket upper bound as a label value."""
    if _is_integral(le):
        return str(le)
    if isinstance(le, float):
        return np.format_float_positional(le, trim="-")
    if isinstance(le, str):
        return le
    raise MalformedMetrics(f"bucket bound has unsupported type: {type(le).__name__}")


class MetricDecoder:
    """
    Turns a ``dump_metrics`` reply into a Sample.

    Every failure aborts the whole sample: a partially decoded sample would
    present a different key set to the store.
    """

    def __init__(self, count_label: Optional[str] = None):
        """
        Args:
            count_label: when set, the aggregate count of a histogram is stored
                under ``bucket=<count_label>``; otherwise under the metric key.
        """
        self.count_label = count_label

    def decode(self, buffer: bytes) -> Sample:
        try:
            document = json.loads(buffer)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedMetrics(f"metrics dump is not valid JSON: {e}")

        if not isinstance(document, dict):
            raise MalformedMetrics("metrics dump is not a JSON object")
        metrics = document.get("metrics")
        if not isinstance(metrics, list):
            raise MalformedMetrics("metrics dump has no 'metrics' array")

        ints: Dict[UnifiedKey, Observation] = {}
        floats: Dict[UnifiedKey, Observation] = {}
        for element in metrics:
            for obs in self.decode_metric(element):
                bucket = ints if obs.kind == ValueKind.INT else floats
                if obs.key in bucket:
                    raise MalformedMetrics(f"duplicate {obs.kind.value} metric '{obs.key}'")
                bucket[obs.key] = obs

        sample = Sample(
            ints=[ints[k] for k in sorted(ints)],
            floats=[floats[k] for k in sorted(floats)],
        )
        logger.debug(f"Decoded {len(metrics)} metrics into {len(sample)} observations")
        return sample

    def decode_metric(self, element: Any) -> List[Observation]:
        """Decode one ``{"<name>": {...}}`` element of the metrics array."""
        if not isinstance(element, dict) or len(element) != 1:
            raise MalformedMetrics(f"metric element must be a single-field object: {element!r}")

        name, body = next(iter(element.items()))
        _utf8(name, "metric name")
        if not isinstance(body, dict):
            raise MalformedMetrics(f"metric '{name}' body is not an object")

        if "value" in body:
            value = body["value"]
            reserved = {"value"}
        elif "buckets" in body:
            # histogram fields may sit beside the labels instead of under "value"
            value = {f: body[f] for f in HISTOGRAM_FIELDS if f in body}
            reserved = set(HISTOGRAM_FIELDS)
        else:
            raise MalformedMetrics(f"metric '{name}' has no value")

        info = MetricInfo(name, self._extract_labels(name, body, reserved))

        shape = classify(value)
        if shape == ValueShape.SCALAR_INT:
            if "ratio" in name:
                return [Observation.real(encode(info), value)]
            return [Observation.integer(encode(info), value)]
        elif shape == ValueShape.SCALAR_FLOAT:
            return [Observation.real(encode(info), value)]
        else:
            return self._expand_histogram(info, value)

    def _extract_labels(self, name: str, body: Dict[str, Any], reserved) -> Dict[str, str]:
        labels = {}
        for label_name, label_value in body.items():
            if label_name in reserved:
                continue
            if not isinstance(label_value, str):
                raise MalformedMetrics(f"label '{label_name}' of metric '{name}' is not a string")
            _utf8(label_name, f"label name of metric '{name}'")
            raw = _utf8(label_value, f"label '{label_name}' of metric '{name}'")
            if label_name == "device_id":
                if not raw:
                    raise MalformedMetrics(f"empty device_id on metric '{name}'")
                label_value = str(raw[0])
            labels[label_name] = label_value
        return labels

    def _expand_histogram(self, info: MetricInfo, histogram: Dict[str, Any]) -> List[Observation]:
        count = histogram.get("count")
        total = histogram.get("sum")
        buckets = histogram.get("buckets")
        if not _is_integral(count):
            raise MalformedMetrics(f"histogram '{info.name}' count is not an integer")
        if not _is_number(total):
            raise MalformedMetrics(f"histogram '{info.name}' sum is not a number")
        if not isinstance(buckets, list):
            raise MalformedMetrics(f"histogram '{info.name}' buckets is not an array")

        count_info = info if self.count_label is None else info.with_labels(bucket=self.count_label)
        observations = [
            Observation.integer(encode(count_info), count),
            Observation.real(encode(info), total),
        ]

        for index, bucket in enumerate(buckets):
            if not isinstance(bucket, dict) or "le" not in bucket:
                raise MalformedMetrics(f"histogram '{info.name}' bucket {index} has no 'le'")
            bucket_count = bucket.get("count")
            if not _is_integral(bucket_count):
                raise MalformedMetrics(f"histogram '{info.name}' bucket {index} count is not an integer")
            bucket_info = info.with_labels(bucket=str(index), le=format_bound(bucket["le"]))
            observations.append(Observation.integer(encode(bucket_info), bucket_count))

        return observations


def decode(buffer: bytes, count_label: Optional[str] = None) -> Sample:
    """Decode one metrics dump with the given histogram count policy."""
    return MetricDecoder(count_label=count_label).decode(buffer)
