"""Per-target columnar time series with a schema locked by the first sample."""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Sequence, Tuple, Union

import numpy as np

from cmt.decoder import Observation, ValueKind
from cmt.errors import InvalidPattern, NoMatch, SchemaDrift
from cmt.keys import UnifiedKey

logger = logging.getLogger(__name__)

SchemaEntry = Tuple[ValueKind, UnifiedKey]


@dataclass
class Column:
    """One series, aligned with the owning store's timestamps."""
    key: UnifiedKey
    kind: ValueKind
    values: list = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.values)


@dataclass
class FloatColumn:
    """A selected series widened to float64."""
    key: UnifiedKey
    values: np.ndarray


def compile_pattern(pattern: Union[str, Pattern]) -> Pattern:
    """Compile a selection pattern, reporting bad regexes as InvalidPattern."""
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidPattern(f"can't build regex from '{pattern}': {e}")


class Store:
    """
    Columns for one target.

    Integer columns take ordinals ``0..n-1`` and float columns continue at
    ``n``; the index maps ``(kind, key)`` to that ordinal.
    """

    def __init__(self, target: str = ""):
        self.target = target
        self.timestamps: List[int] = []
        self.int_columns: List[Column] = []
        self.float_columns: List[Column] = []
        self.index: Dict[SchemaEntry, int] = {}
        self._schema: Optional[Tuple[SchemaEntry, ...]] = None

    @property
    def schema(self) -> Optional[Tuple[SchemaEntry, ...]]:
        return self._schema

    def __len__(self) -> int:
        return len(self.timestamps)

    @property
    def columns(self) -> List[Column]:
        """All columns in ordinal order."""
        return self.int_columns + self.float_columns

    def keys(self) -> List[UnifiedKey]:
        return [c.key for c in self.columns]

    def push(self, timestamp: int, observations: Sequence[Observation]):
        """
        Append one sample.

        Raises:
            SchemaDrift: if the observations' ``(kind, key)`` sequence differs
                from the one locked by the first push. Nothing is appended.
        """
        schema = tuple((o.kind, o.key) for o in observations)

        if self._schema is None:
            self._lock_schema(schema)
        elif schema != self._schema:
            raise SchemaDrift(self.target, self._describe_drift(schema))

        self.timestamps.append(timestamp)
        columns = self.columns
        for column, obs in zip(columns, self._ordered(observations)):
            column.values.append(obs.value)

    def _ordered(self, observations: Sequence[Observation]) -> List[Observation]:
        ints = [o for o in observations if o.kind == ValueKind.INT]
        floats = [o for o in observations if o.kind == ValueKind.FLOAT]
        return ints + floats

    def _lock_schema(self, schema: Tuple[SchemaEntry, ...]):
        if len(set(schema)) != len(schema):
            raise SchemaDrift(self.target, "first sample contains duplicate keys")
        ints = [entry for entry in schema if entry[0] == ValueKind.INT]
        floats = [entry for entry in schema if entry[0] == ValueKind.FLOAT]
        self.int_columns = [Column(key, kind) for kind, key in ints]
        self.float_columns = [Column(key, kind) for kind, key in floats]
        for ordinal, entry in enumerate(ints + floats):
            self.index[entry] = ordinal
        self._schema = schema
        logger.debug(
            f"Schema locked for '{self.target}': "
            f"{len(self.int_columns)} int, {len(self.float_columns)} float columns"
        )

    def _describe_drift(self, schema: Tuple[SchemaEntry, ...]) -> str:
        expected = set(self._schema)
        got = set(schema)
        missing = sorted(str(key) for _, key in expected - got)
        added = sorted(str(key) for _, key in got - expected)
        if not missing and not added:
            return "keys reordered"
        parts = []
        if missing:
            parts.append(f"{len(missing)} missing (first: {missing[0]})")
        if added:
            parts.append(f"{len(added)} added (first: {added[0]})")
        return ", ".join(parts)

    def select(self, pattern: Union[str, Pattern]) -> List[FloatColumn]:
        """
        Project every column whose key token matches ``pattern`` to float.

        Raises:
            NoMatch: if no key matches.
        """
        regex = compile_pattern(pattern)
        selected = [
            FloatColumn(column.key, np.asarray(column.values, dtype=np.float64))
            for column in self.columns
            if regex.search(column.key.token)
        ]
        if not selected:
            raise NoMatch(f"no metric of '{self.target}' matches '{regex.pattern}'")
        return selected

    @classmethod
    def from_columns(
        cls,
        target: str,
        timestamps: List[int],
        int_columns: List[Column],
        float_columns: List[Column],
    ) -> "Store":
        """Rebuild a store from persisted columns."""
        for column in int_columns + float_columns:
            if len(column.values) != len(timestamps):
                raise ValueError(
                    f"column '{column.key}' of '{target}' has {len(column.values)} values "
                    f"for {len(timestamps)} timestamps"
                )
        store = cls(target)
        store.timestamps = list(timestamps)
        if timestamps or int_columns or float_columns:
            store._lock_schema(
                tuple((ValueKind.INT, c.key) for c in int_columns)
                + tuple((ValueKind.FLOAT, c.key) for c in float_columns)
            )
            for column, restored in zip(store.columns, int_columns + float_columns):
                column.values = list(restored.values)
        return store


WatchResult = Dict[str, Store]
