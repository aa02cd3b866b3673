"""Unified metric keys: a metric name and its label set folded into one token."""
import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from cmt.errors import InvalidKeyEncoding

LABEL_SEP = "&"
PAIR_SEP = "="

# '%' must be escaped first and unescaped last
_ESCAPES = (("%", "%25"), ("&", "%26"), ("=", "%3D"))
_SPLIT_RE = re.compile(r"[&=]")


def _escape(text: str) -> str:
    for raw, quoted in _ESCAPES:
        text = text.replace(raw, quoted)
    return text


def _unescape(text: str) -> str:
    for raw, quoted in reversed(_ESCAPES):
        text = text.replace(quoted, raw)
    return text


@dataclass
class MetricInfo:
    """Identity of one observation: metric name plus labels ordered by key."""
    name: str
    labels: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.labels = dict(sorted(self.labels.items()))

    def with_labels(self, **extra: str) -> "MetricInfo":
        """Copy of this identity with additional labels."""
        labels = dict(self.labels)
        labels.update(extra)
        return MetricInfo(self.name, labels)


@dataclass(frozen=True, order=True)
class UnifiedKey:
    """Canonical, totally ordered identity of one metric series."""
    token: str

    @classmethod
    def of(cls, name: str, labels: Optional[Dict[str, str]] = None) -> "UnifiedKey":
        return encode(MetricInfo(name, labels or {}))

    @property
    def name(self) -> str:
        return decode(self).name

    @property
    def labels(self) -> Dict[str, str]:
        return decode(self).labels

    def describe(self) -> str:
        """Human readable form: ``name key: value key: value``."""
        info = decode(self)
        parts = [info.name]
        parts.extend(f"{k}: {v}" for k, v in info.labels.items())
        return " ".join(parts)

    def __str__(self) -> str:
        return self.token


def encode(info: MetricInfo) -> UnifiedKey:
    """Fold name and labels into a single token, labels in key order."""
    token = _escape(info.name)
    for key, value in sorted(info.labels.items()):
        token += f"{LABEL_SEP}{_escape(key)}{PAIR_SEP}{_escape(value)}"
    return UnifiedKey(token)


def decode(key: UnifiedKey) -> MetricInfo:
    """
    Split a token back into name and labels.

    Raises:
        InvalidKeyEncoding: if the token does not split into a name followed
            by key/value pairs.
    """
    parts = _SPLIT_RE.split(key.token)
    if len(parts) % 2 == 0 or not parts[0]:
        raise InvalidKeyEncoding(f"invalid unified key: {key.token!r}")

    # every label must be introduced by '&' and split by '='
    separators = _SPLIT_RE.findall(key.token)
    if separators != [LABEL_SEP, PAIR_SEP] * (len(separators) // 2):
        raise InvalidKeyEncoding(f"invalid unified key: {key.token!r}")

    labels = {}
    for i in range(1, len(parts), 2):
        labels[_unescape(parts[i])] = _unescape(parts[i + 1])
    return MetricInfo(_unescape(parts[0]), labels)
