"""Multi-target sampling loop."""
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from cmt.decoder import MetricDecoder
from cmt.errors import DecodeError, SchemaDrift, TransportError
from cmt.self_metrics import SelfMetrics
from cmt.snapshot import save
from cmt.store import Store, WatchResult
from cmt.transport import Transport

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def target_name(path: Union[str, Path]) -> str:
    """Name a target after its socket file, e.g. ``osd.0.asok`` -> ``osd.0``."""
    return Path(path).stem


class TargetState:
    """Bookkeeping for one target."""

    def __init__(self, name: str, path: Path):
        self.name = name
        self.path = path
        self.store = Store(name)
        self.errors = 0
        self.last_error: Optional[str] = None


class Watcher:
    """Samples every target once per interval and keeps one Store per target."""

    def __init__(
        self,
        paths: Sequence[Union[str, Path]],
        transport: Transport,
        interval: int = 15,
        base_unit_s: float = 1.0,
        decoder: Optional[MetricDecoder] = None,
        clock: Callable[[], int] = now_ms,
        self_metrics: Optional[SelfMetrics] = None,
        snapshot_path: Optional[Union[str, Path]] = None,
    ):
        if interval < 1:
            raise ValueError("interval must be at least one base unit")

        self.transport = transport
        self.interval = interval
        self.base_unit_s = base_unit_s
        self.decoder = decoder or MetricDecoder()
        self.clock = clock
        self.self_metrics = self_metrics
        self.snapshot_path = snapshot_path
        self.tick_count = 0
        self.start_time = time.time()

        self.targets: Dict[str, TargetState] = {}
        for path in paths:
            name = target_name(path)
            if name in self.targets:
                raise ValueError(f"Duplicate target name '{name}' ({path})")
            self.targets[name] = TargetState(name, Path(path))

        logger.info(f"Watcher initialized with {len(self.targets)} targets, interval {interval}")

    @property
    def result(self) -> WatchResult:
        return {name: state.store for name, state in self.targets.items()}

    def check(self):
        """Verify every target is reachable; raises TransportError otherwise."""
        for state in self.targets.values():
            self.transport.check(state.path)

    def sample_target(self, state: TargetState):
        """Fetch, decode and store one sample of one target."""
        timestamp = self.clock()
        buffer = self.transport.fetch(state.path)
        sample = self.decoder.decode(buffer)
        state.store.push(timestamp, sample.observations)

    def sample_once(self) -> int:
        """
        Sample all targets sequentially.

        Per-target failures are logged and counted, never raised.

        Returns:
            Number of targets sampled successfully.
        """
        tick_start = time.time()
        stored = 0

        for state in self.targets.values():
            try:
                self.sample_target(state)
            except (TransportError, DecodeError, SchemaDrift) as e:
                state.errors += 1
                state.last_error = str(e)
                logger.error(f"Dropping sample of '{state.name}': {e}")
                if self.self_metrics:
                    self.self_metrics.record_error(state.name, e)
                continue

            stored += 1
            if self.self_metrics:
                self.self_metrics.record_sample(state.name, len(state.store.columns))

        self.tick_count += 1
        tick_duration = time.time() - tick_start
        if self.self_metrics:
            self.self_metrics.record_tick_duration(tick_duration)
        logger.debug(
            f"Tick {self.tick_count}: {stored}/{len(self.targets)} targets "
            f"in {tick_duration:.3f}s"
        )
        return stored

    def run(self, shutdown: threading.Event) -> WatchResult:
        """
        Sample until ``shutdown`` is set, then persist the result.

        The token is checked once per base unit, so a sample in progress
        always completes and shutdown waits at most one base unit.
        """
        self.start_time = time.time()
        logger.info("Starting watch loop")

        units = 0
        try:
            while not shutdown.is_set():
                if units % self.interval == 0:
                    self.sample_once()
                shutdown.wait(self.base_unit_s)
                units += 1
        finally:
            # earlier ticks are kept even when the loop dies on an unexpected error
            logger.info(f"Watch loop stopped after {self.tick_count} ticks")
            if self.snapshot_path is not None:
                save(self.result, self.snapshot_path)
        return self.result

    def status(self) -> Dict[str, object]:
        """Summary of the loop and of every target."""
        return {
            "uptime_seconds": time.time() - self.start_time,
            "tick_count": self.tick_count,
            "interval": self.interval,
            "base_unit_s": self.base_unit_s,
            "targets": {
                name: {
                    "path": str(state.path),
                    "samples": len(state.store),
                    "columns": len(state.store.columns),
                    "errors": state.errors,
                    "last_error": state.last_error,
                }
                for name, state in self.targets.items()
            },
        }

    def target_names(self) -> List[str]:
        return list(self.targets)
