"""
CRDT engine for memkv - typed values, recursive merge, load and operate.

Invariants:
    - Default values depend only on the bucket type's datatype
    - operate() is atomic per call with respect to the dataset
"""

from .loader import CrdtLoader, LoadedCrdt
from .merge import merge
from .operator import CrdtOperator, OperateResult
from .types import (
    DEFAULTS,
    CrdtMap,
    CrdtType,
    MapDelete,
    MapUpdate,
    Operation,
    SetOp,
    decode_value,
    encode_value,
)

__all__ = [
    "CrdtLoader",
    "LoadedCrdt",
    "merge",
    "CrdtOperator",
    "OperateResult",
    "DEFAULTS",
    "CrdtMap",
    "CrdtType",
    "MapDelete",
    "MapUpdate",
    "Operation",
    "SetOp",
    "decode_value",
    "encode_value",
]
