"""
Snapshot persistence of a watch result.

The snapshot is a single JSON document validated with pydantic. Integer and
float columns are kept in separate typed lists so the int/float class of
every column survives the round trip. Files are written with
create-truncate-write: a crash while writing leaves a corrupt file and the
previous snapshot at that path is lost.
"""
import logging
from pathlib import Path
from typing import Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cmt.decoder import ValueKind
from cmt.errors import InvalidKeyEncoding, PersistenceError, SchemaDrift
from cmt.keys import UnifiedKey, decode
from cmt.store import Column, Store, WatchResult

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class IntColumnModel(BaseModel):
    key: str
    values: List[int] = Field(default_factory=list)


class FloatColumnModel(BaseModel):
    model_config = ConfigDict(ser_json_inf_nan="constants")

    key: str
    values: List[float] = Field(default_factory=list)


class StoreModel(BaseModel):
    timestamps: List[int] = Field(default_factory=list)
    int_columns: List[IntColumnModel] = Field(default_factory=list)
    float_columns: List[FloatColumnModel] = Field(default_factory=list)


class SnapshotModel(BaseModel):
    version: int = SNAPSHOT_VERSION
    targets: Dict[str, StoreModel] = Field(default_factory=dict)


def _store_to_model(store: Store) -> StoreModel:
    return StoreModel(
        timestamps=store.timestamps,
        int_columns=[IntColumnModel(key=c.key.token, values=c.values) for c in store.int_columns],
        float_columns=[FloatColumnModel(key=c.key.token, values=c.values) for c in store.float_columns],
    )


def _model_to_store(target: str, model: StoreModel) -> Store:
    def column(key: str, kind: ValueKind, values: list) -> Column:
        unified = UnifiedKey(key)
        decode(unified)  # reject hand-edited keys early
        return Column(unified, kind, values)

    return Store.from_columns(
        target,
        model.timestamps,
        [column(c.key, ValueKind.INT, c.values) for c in model.int_columns],
        [column(c.key, ValueKind.FLOAT, c.values) for c in model.float_columns],
    )


def dumps(result: WatchResult) -> bytes:
    """Serialize a watch result."""
    model = SnapshotModel(targets={name: _store_to_model(s) for name, s in result.items()})
    return model.model_dump_json().encode()


def loads(data: bytes) -> WatchResult:
    """
    Deserialize a watch result.

    Raises:
        PersistenceError: on invalid JSON, wrong shape, an unsupported version
            or inconsistent columns.
    """
    try:
        model = SnapshotModel.model_validate_json(data)
    except ValidationError as e:
        raise PersistenceError(f"invalid snapshot: {e}")

    if model.version != SNAPSHOT_VERSION:
        raise PersistenceError(
            f"unsupported snapshot version {model.version}, expected {SNAPSHOT_VERSION}"
        )

    try:
        return {name: _model_to_store(name, m) for name, m in model.targets.items()}
    except (ValueError, InvalidKeyEncoding, SchemaDrift) as e:
        raise PersistenceError(f"corrupt snapshot: {e}")


def save(result: WatchResult, path: Union[str, Path]):
    """Write a snapshot to ``path``, truncating any previous file."""
    data = dumps(result)
    try:
        with open(path, "wb") as f:
            f.write(data)
    except OSError as e:
        raise PersistenceError(f"can't write snapshot {path}: {e}")
    logger.info(f"Snapshot of {len(result)} targets written to {path} ({len(data)} bytes)")


def load(path: Union[str, Path]) -> WatchResult:
    """Read a snapshot written by :func:`save`."""
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise PersistenceError(f"can't read snapshot {path}: {e}")
    result = loads(data)
    logger.info(f"Loaded snapshot of {len(result)} targets from {path}")
    return result
