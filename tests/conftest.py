"""Shared fixtures: metric dump builders and a scripted transport."""
import json
from pathlib import Path
from typing import Dict, List, Union

import pytest

from cmt.errors import TransportError


def make_dump(*metrics) -> bytes:
    """Build a dump_metrics reply from ``{"name": {...}}`` elements."""
    return json.dumps({"metrics": list(metrics)}).encode()


def counters(**values) -> bytes:
    """Dump of unlabelled scalar metrics."""
    return make_dump(*({name: {"value": v}} for name, v in values.items()))


class ScriptedTransport:
    """Returns queued replies per target; exceptions in the queue are raised."""

    def __init__(self, replies: Dict[str, List[Union[bytes, Exception]]]):
        self.replies = {Path(k).stem: list(v) for k, v in replies.items()}
        self.fetched: List[str] = []
        self.bad_paths = set()

    def check(self, target):
        if Path(target).stem in self.bad_paths:
            raise TransportError(f"{target} is not a domain socket")

    def fetch(self, target) -> bytes:
        name = Path(target).stem
        self.fetched.append(name)
        queue = self.replies[name]
        if not queue:
            raise TransportError(f"{target}: no more replies")
        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def dump():
    return make_dump


@pytest.fixture
def counter_dump():
    return counters


@pytest.fixture
def scripted_transport():
    return ScriptedTransport


class FakeClock:
    def __init__(self, start: int = 0, step: int = 1):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def clock():
    return FakeClock()
