"""
Recursive CRDT merge.

merge() folds one operation value into the current data for a datatype.
Dispatch goes through _MERGERS, so supporting a new datatype is one
entry in that table.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Set, Tuple

from .types import DEFAULTS, CrdtMap, CrdtType, MapDelete, MapUpdate, SetOp, set_members


def _set_changes(value: Any) -> Tuple[Set[str], Set[str]]:
    if isinstance(value, SetOp):
        return set(set_members(value.add)), set(set_members(value.remove))
    if isinstance(value, Mapping):
        return set(set_members(value.get("add"))), set(set_members(value.get("remove")))
    raise TypeError(f"Set operation must be a SetOp or mapping, got {type(value).__name__}")


def _merge_set(data: Set[str], value: Any) -> Set[str]:
    add, remove = _set_changes(value)
    # Removal after addition: remove wins within one operation
    return (set(data) | add) - remove


def _merge_counter(data: int, value: Any) -> int:
    return data + int(value)


def _replace(data: Any, value: Any) -> Any:
    return value


def _merge_map(data: CrdtMap, value: Any) -> CrdtMap:
    if not isinstance(value, (MapUpdate, MapDelete)):
        raise TypeError(
            f"Map operation must be a MapUpdate or MapDelete, got {type(value).__name__}"
        )

    child_type = CrdtType.parse(value.type)
    facet = data.facet(child_type)

    if isinstance(value, MapUpdate):
        facet[value.name] = merge(facet.get(value.name), child_type, value.value)
    else:
        facet.pop(value.name, None)
    return data


_MERGERS: Dict[CrdtType, Callable[[Any, Any], Any]] = {
    CrdtType.SET: _merge_set,
    CrdtType.COUNTER: _merge_counter,
    CrdtType.FLAG: _replace,
    CrdtType.REGISTER: _replace,
    CrdtType.MAP: _merge_map,
}


def merge(data: Any, datatype: CrdtType, value: Any) -> Any:
    """Merge an operation value into data.

    Args:
        data: Current value (None for a child that doesn't exist yet)
        datatype: Datatype of data
        value: Operation payload for that datatype

    Returns:
        The merged value

    Raises:
        UnsupportedDatatypeError: If datatype is unknown
        TypeError: If value doesn't fit the datatype
    """
    datatype = CrdtType.parse(datatype)
    if data is None and datatype in DEFAULTS:
        data = DEFAULTS[datatype]()
    return _MERGERS[datatype](data, value)
