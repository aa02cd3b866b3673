"""Entry points behind the command line: get, watch, query and plot."""
import logging
import signal
import threading
from pathlib import Path
from typing import List, Optional, TextIO, Union

from cmt.analysis import ANALYZERS
from cmt.config import Config
from cmt.control_api import ControlAPI
from cmt.decoder import MetricDecoder
from cmt.errors import NoMatch
from cmt.self_metrics import start_self_metrics
from cmt.selector import list_keys, select
from cmt.snapshot import load
from cmt.store import WatchResult, compile_pattern
from cmt.transport import AdminSocketTransport, Transport
from cmt.watcher import Watcher

logger = logging.getLogger(__name__)


def _format_value(value) -> str:
    return repr(value) if isinstance(value, float) else str(value)


def get(
    path: Union[str, Path],
    pattern: str,
    config: Optional[Config] = None,
    transport: Optional[Transport] = None,
    out: Optional[TextIO] = None,
) -> int:
    """
    Sample one target once and print the observations matching ``pattern``.

    Returns:
        Number of printed observations.
    """
    config = config or Config()
    transport = transport or AdminSocketTransport(config.watch.socket_timeout_s)
    regex = compile_pattern(pattern)

    transport.check(path)
    decoder = MetricDecoder(count_label=config.decoder.histogram_count_label)
    sample = decoder.decode(transport.fetch(path))

    printed = 0
    for obs in sample.observations:
        if regex.search(obs.key.token):
            print(f"{obs.key.describe()} {_format_value(obs.value)}", file=out)
            printed += 1
    return printed


def watch(
    paths: List[Union[str, Path]],
    interval: Optional[int] = None,
    config: Optional[Config] = None,
    transport: Optional[Transport] = None,
    shutdown: Optional[threading.Event] = None,
) -> WatchResult:
    """
    Sample ``paths`` until shutdown, then write the snapshot.

    SIGINT and SIGTERM set the shutdown token when called from the main
    thread.
    """
    config = config or Config()
    transport = transport or AdminSocketTransport(config.watch.socket_timeout_s)
    shutdown = shutdown or threading.Event()

    watcher = Watcher(
        paths or config.watch.targets,
        transport,
        interval=interval if interval is not None else config.watch.interval,
        base_unit_s=config.watch.base_unit_s,
        decoder=MetricDecoder(count_label=config.decoder.histogram_count_label),
        self_metrics=start_self_metrics(config.self_metrics),
        snapshot_path=config.watch.snapshot_path,
    )
    watcher.check()

    if config.control_api.enabled:
        ControlAPI(watcher, shutdown).start_in_background(
            host=config.control_api.bind_address,
            port=config.control_api.port,
        )

    if threading.current_thread() is not threading.main_thread():
        return watcher.run(shutdown)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, stopping after the current tick...")
        shutdown.set()

    previous = {
        signum: signal.signal(signum, signal_handler)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        return watcher.run(shutdown)
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def query(
    file: Union[str, Path],
    pattern: Optional[str] = None,
    out: Optional[TextIO] = None,
) -> int:
    """
    Print the series matching ``pattern`` from a snapshot, or list every key
    when no pattern is given.

    Returns:
        Number of printed series or keys.
    """
    result = load(file)

    if pattern is None:
        printed = 0
        for target, keys in list_keys(result).items():
            print(f"{target}:", file=out)
            for key in keys:
                print(f"  {key.describe()}", file=out)
                printed += 1
        return printed

    printed = 0
    for target, columns in select(result, pattern).items():
        timestamps = result[target].timestamps
        for column in columns:
            print(f"{target} {column.key.describe()}", file=out)
            for t, v in zip(timestamps, column.values.tolist()):
                print(f"{t} {v}", file=out)
            printed += 1
    return printed


def plot(file: Union[str, Path], name: str, out: Optional[TextIO] = None) -> int:
    """
    Compute the derived ratio ``name`` from a snapshot and print its defined
    points.

    Returns:
        Number of printed points.
    """
    analyzer = ANALYZERS.get(name)
    if analyzer is None:
        raise NoMatch(f"unknown ratio '{name}', available: {', '.join(sorted(ANALYZERS))}")

    printed = 0
    for series in analyzer(load(file)):
        print(f"{series.target} {series.label}", file=out)
        defined = series.finite()
        if len(defined) < len(series):
            logger.info(
                f"{series.target} {series.label}: {len(series) - len(defined)} "
                f"undefined points dropped"
            )
        for t, v in defined.points():
            print(f"{t} {v}", file=out)
            printed += 1
    return printed
