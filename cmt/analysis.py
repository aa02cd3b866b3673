"""Derived ratios over cumulative counters."""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence

import numpy as np

from cmt.keys import UnifiedKey
from cmt.store import FloatColumn, WatchResult

logger = logging.getLogger(__name__)

INVALIDATED_PATTERN = "cache_trans_invalidated"
COMMITTED_PATTERN = "cache_trans_committed"


@dataclass
class RatioSeries:
    """A derived ratio; ``values[i]`` belongs to ``timestamps[i]``."""
    target: str
    label: str
    timestamps: np.ndarray
    values: np.ndarray

    def finite(self) -> "RatioSeries":
        """Drop the undefined points (no denominator progress)."""
        mask = np.isfinite(self.values)
        return RatioSeries(self.target, self.label, self.timestamps[mask], self.values[mask])

    def points(self) -> List[tuple]:
        return list(zip(self.timestamps.tolist(), self.values.tolist()))

    def __len__(self) -> int:
        return len(self.values)


def delta_ratio(
    numerator: np.ndarray, denominator: np.ndarray
) -> np.ndarray:
    """
    Ratio of per-window increments of two cumulative counters.

    ``out[t-1] = (num[t] - num[t-1]) / (den[t] - den[t-1])`` for ``t >= 1``.
    A window where the denominator did not move gives NaN.
    """
    numerator = np.asarray(numerator, dtype=np.float64)
    denominator = np.asarray(denominator, dtype=np.float64)
    if numerator.shape != denominator.shape:
        raise ValueError(
            f"series length mismatch: {numerator.shape[0]} vs {denominator.shape[0]}"
        )
    num = np.diff(numerator)
    den = np.diff(denominator)
    out = np.full(num.shape, np.nan)
    np.divide(num, den, out=out, where=den != 0)
    return out


def _ratio_series(
    target: str, label: str, timestamps: Sequence[int], num: np.ndarray, den: np.ndarray
) -> RatioSeries:
    return RatioSeries(
        target=target,
        label=label,
        timestamps=np.asarray(timestamps, dtype=np.int64)[1:],
        values=delta_ratio(num, den),
    )


def trans_conflict(result: WatchResult, detailed: bool = False) -> List[RatioSeries]:
    """
    Transaction conflict ratio: invalidated over committed transactions.

    With ``detailed`` one series per matched (invalidated, committed) column
    pair, otherwise one series per target over the summed columns.
    """
    series = []
    for target, store in result.items():
        invalidated = store.select(INVALIDATED_PATTERN)
        committed = store.select(COMMITTED_PATTERN)
        if detailed:
            if len(invalidated) != len(committed):
                logger.warning(
                    f"'{target}': {len(invalidated)} invalidated vs "
                    f"{len(committed)} committed columns, extra columns ignored"
                )
            for inva, comm in zip(invalidated, committed):
                series.append(
                    _ratio_series(target, _pair_label(inva.key), store.timestamps, inva.values, comm.values)
                )
        else:
            series.append(
                _ratio_series(
                    target, "trans_conflict_ratio", store.timestamps,
                    _sum_columns(invalidated), _sum_columns(committed),
                )
            )
    return series


def _sum_columns(columns: List[FloatColumn]) -> np.ndarray:
    return np.sum([c.values for c in columns], axis=0)


def _pair_label(key: UnifiedKey) -> str:
    labels = key.labels
    return " ".join(f"{k}={v}" for k, v in labels.items()) or key.name


ANALYZERS: Dict[str, Callable[[WatchResult], List[RatioSeries]]] = {
    "trans_conflict_ratio": lambda result: trans_conflict(result, detailed=False),
    "trans_conflict_ratio_detailed": lambda result: trans_conflict(result, detailed=True),
}
