"""
CRDT value and operation types.

Values are plain Python data tagged by CrdtType:
    counter  -> int
    set      -> set[str]
    flag     -> bool
    register -> str
    map      -> CrdtMap (five name -> value facets, maps recurse)

Operations name the datatype they act on. Map operations carry a child
datatype and name and are either a MapUpdate (recursive) or a MapDelete.

Invariants:
    - Only counter, set and map can live at the top level of a key
    - A map facet name is always "<datatype>s"
    - Encoding is a tagged JSON envelope; decode(encode(x)) == x
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Set, Tuple, Union

from ..errors import RequestError, UnsupportedDatatypeError


class CrdtType(str, Enum):
    """Supported CRDT datatypes."""

    COUNTER = "counter"
    SET = "set"
    MAP = "map"
    FLAG = "flag"
    REGISTER = "register"

    @property
    def facet(self) -> str:
        """Name of the map facet holding children of this type."""
        return f"{self.value}s"

    @classmethod
    def parse(cls, datatype: Any, bucket_type: Any = None) -> CrdtType:
        """Parse a datatype name, raising UnsupportedDatatypeError."""
        try:
            return cls(datatype)
        except ValueError:
            raise UnsupportedDatatypeError(datatype, bucket_type)


@dataclass
class CrdtMap:
    """A map CRDT: five facets of named nested values."""

    counters: Dict[str, int] = field(default_factory=dict)
    flags: Dict[str, bool] = field(default_factory=dict)
    maps: Dict[str, CrdtMap] = field(default_factory=dict)
    registers: Dict[str, str] = field(default_factory=dict)
    sets: Dict[str, Set[str]] = field(default_factory=dict)

    def facet(self, datatype: CrdtType) -> Dict[str, Any]:
        return getattr(self, datatype.facet)

    def value_of(self, datatype: CrdtType, name: str) -> Any:
        """Read a child, falling back to the type's empty value."""
        facet = self.facet(datatype)
        if name in facet:
            return facet[name]
        return READ_DEFAULTS[datatype]()


# Initial values for a key (or map child) that doesn't exist yet
DEFAULTS: Dict[CrdtType, Callable[[], Any]] = {
    CrdtType.COUNTER: lambda: 0,
    CrdtType.SET: set,
    CrdtType.MAP: CrdtMap,
}

READ_DEFAULTS: Dict[CrdtType, Callable[[], Any]] = {
    **DEFAULTS,
    CrdtType.FLAG: lambda: False,
    CrdtType.REGISTER: lambda: None,
}


def set_members(value: Union[str, bytes, Iterable[str], None]) -> Tuple[str, ...]:
    """Normalize a set operand; a lone string is one member, not its characters."""
    if value is None:
        return ()
    if isinstance(value, (str, bytes)):
        return (value,)
    return tuple(value)


@dataclass(frozen=True)
class SetOp:
    """Additions and removals applied to a set in one operation."""

    add: Tuple[str, ...] = ()
    remove: Tuple[str, ...] = ()

    @classmethod
    def of(
        cls,
        add: Union[str, Iterable[str]] = (),
        remove: Union[str, Iterable[str]] = (),
    ) -> SetOp:
        return cls(set_members(add), set_members(remove))


@dataclass(frozen=True)
class MapUpdate:
    """Merge `value` into the child `name` of type `type`."""

    type: CrdtType
    name: str
    value: Any


@dataclass(frozen=True)
class MapDelete:
    """Remove the child `name` of type `type`."""

    type: CrdtType
    name: str


@dataclass(frozen=True)
class Operation:
    """One CRDT operation against a key.

    Attributes:
        type: Datatype of the key
        value: int delta (counter), SetOp or {"add", "remove"} mapping (set),
            MapUpdate/MapDelete (map), bool (flag), str (register)
    """

    type: CrdtType
    value: Union[int, SetOp, Mapping[str, Iterable[str]], MapUpdate, MapDelete, bool, str]


def _to_plain(datatype: CrdtType, value: Any) -> Any:
    if datatype is CrdtType.SET:
        return sorted(value)
    if datatype is CrdtType.MAP:
        return {
            child.facet: {
                name: _to_plain(child, child_value)
                for name, child_value in value.facet(child).items()
            }
            for child in CrdtType
        }
    return value


def _from_plain(datatype: CrdtType, plain: Any) -> Any:
    if datatype is CrdtType.SET:
        return set(plain)
    if datatype is CrdtType.MAP:
        result = CrdtMap()
        for child in CrdtType:
            facet = result.facet(child)
            for name, child_plain in plain.get(child.facet, {}).items():
                facet[name] = _from_plain(child, child_plain)
        return result
    return plain


def encode_value(datatype: CrdtType, value: Any) -> bytes:
    """Serialize a CRDT value into its stored envelope."""
    envelope = {"type": datatype.value, "value": _to_plain(datatype, value)}
    return json.dumps(envelope, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_value(raw: bytes) -> Tuple[CrdtType, Any]:
    """Deserialize a stored envelope.

    Raises:
        RequestError: If the payload is not a CRDT envelope
    """
    try:
        envelope = json.loads(raw.decode("utf-8"))
        datatype = CrdtType(envelope["type"])
        plain = envelope["value"]
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise RequestError(f"Stored value is not a CRDT: {e}", code="INVALID_CRDT")
    return datatype, _from_plain(datatype, plain)
