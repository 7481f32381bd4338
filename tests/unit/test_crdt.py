"""
Unit tests for the CRDT engine.

Tests cover:
- Merge rules per datatype
- Recursive map updates and deletes
- Loading defaults from bucket type properties
- Operator batching, persistence and type checks
- Envelope encoding
"""

import threading

import pytest

from memkv.crdt import (
    CrdtLoader,
    CrdtMap,
    CrdtOperator,
    CrdtType,
    MapDelete,
    MapUpdate,
    Operation,
    SetOp,
    decode_value,
    encode_value,
    merge,
)
from memkv.errors import RequestError, UnsupportedDatatypeError
from memkv.store import Bucket, RecordCodec, RObject


@pytest.fixture
def loader(store):
    return CrdtLoader(store)


@pytest.fixture
def operator(store, loader):
    return CrdtOperator(store, loader)


@pytest.fixture
def typed_store(store):
    """Store with one bucket type per datatype."""
    store.set_bucket_type_props("counters", {"datatype": "counter"})
    store.set_bucket_type_props("sets", {"datatype": "set"})
    store.set_bucket_type_props("maps", {"datatype": "map"})
    return store


class TestMerge:
    """Tests for merge()."""

    def test_counter_adds(self):
        """Counter deltas add, negatives subtract."""
        assert merge(5, CrdtType.COUNTER, 3) == 8
        assert merge(5, CrdtType.COUNTER, -7) == -2

    def test_counter_from_nothing(self):
        """A missing counter starts at zero."""
        assert merge(None, CrdtType.COUNTER, 4) == 4

    def test_counter_increments_commute(self):
        """Order of counter deltas doesn't matter."""
        forward = merge(merge(0, CrdtType.COUNTER, 2), CrdtType.COUNTER, -5)
        backward = merge(merge(0, CrdtType.COUNTER, -5), CrdtType.COUNTER, 2)

        assert forward == backward == -3

    def test_set_add_and_remove(self):
        """Removals apply after additions within one operation."""
        result = merge(set(), CrdtType.SET, SetOp.of(add=["smith", "john"], remove=["smith"]))

        assert result == {"john"}

    def test_set_mapping_payload(self):
        """Set operations may be plain add/remove mappings."""
        assert merge({"a"}, CrdtType.SET, {"add": ["b"], "remove": ["a"]}) == {"b"}

    def test_set_scalar_members(self):
        """A single string add/remove is one member, not its characters."""
        data = merge(set(), CrdtType.SET, {"add": "smith"})
        data = merge(data, CrdtType.SET, SetOp.of(add="john"))
        data = merge(data, CrdtType.SET, {"remove": "smith"})

        assert data == {"john"}
        assert SetOp.of(add="smith").add == ("smith",)
        assert merge(set(), CrdtType.SET, SetOp(add="smith")) == {"smith"}

    def test_set_does_not_mutate_input(self):
        """The current set is left untouched."""
        current = {"a"}

        merge(current, CrdtType.SET, SetOp.of(add=["b"]))

        assert current == {"a"}

    def test_flag_and_register_replace(self):
        """Flags and registers take the new value."""
        assert merge(False, CrdtType.FLAG, True) is True
        assert merge("old", CrdtType.REGISTER, "new") == "new"

    def test_map_counter_update(self):
        """Map updates merge into the named child."""
        update = MapUpdate(CrdtType.COUNTER, "visits", 1)

        data = merge(None, CrdtType.MAP, update)
        data = merge(data, CrdtType.MAP, update)

        assert data.counters == {"visits": 2}

    def test_nested_map_update(self):
        """Map updates recurse through nested maps."""
        op = MapUpdate(CrdtType.MAP, "profile", MapUpdate(CrdtType.REGISTER, "name", "ann"))

        data = merge(CrdtMap(), CrdtType.MAP, op)

        assert data.maps["profile"].registers == {"name": "ann"}

    def test_map_delete(self):
        """Deleting a child falls back to the empty value on read."""
        data = merge(None, CrdtType.MAP, MapUpdate(CrdtType.COUNTER, "visits", 2))

        data = merge(data, CrdtType.MAP, MapDelete(CrdtType.COUNTER, "visits"))

        assert "visits" not in data.counters
        assert data.value_of(CrdtType.COUNTER, "visits") == 0

    def test_map_read_defaults(self):
        """Absent children read as their type's empty value."""
        data = CrdtMap()

        assert data.value_of(CrdtType.FLAG, "x") is False
        assert data.value_of(CrdtType.REGISTER, "x") is None
        assert data.value_of(CrdtType.SET, "x") == set()

    def test_map_rejects_other_payloads(self):
        """Map operations must be updates or deletes."""
        with pytest.raises(TypeError):
            merge(CrdtMap(), CrdtType.MAP, {"counters": {}})

    def test_unknown_datatype(self):
        """Unknown datatypes are rejected."""
        with pytest.raises(UnsupportedDatatypeError):
            merge(None, "hyperloglog", 1)


class TestEncoding:
    """Tests for the stored envelope."""

    def test_nested_map_round_trip(self):
        """Maps survive encode/decode with every facet."""
        value = CrdtMap(
            counters={"c": 3},
            flags={"f": True},
            registers={"r": "v"},
            sets={"s": {"x", "y"}},
            maps={"m": CrdtMap(counters={"inner": 1})},
        )

        datatype, decoded = decode_value(encode_value(CrdtType.MAP, value))

        assert datatype is CrdtType.MAP
        assert decoded == value

    def test_encoding_is_stable(self):
        """Equal sets encode to equal bytes."""
        assert encode_value(CrdtType.SET, {"b", "a"}) == encode_value(CrdtType.SET, {"a", "b"})

    def test_decode_rejects_plain_payloads(self):
        """Non-CRDT payloads raise RequestError."""
        with pytest.raises(RequestError) as exc:
            decode_value(b"not json")

        assert exc.value.code == "INVALID_CRDT"


class TestCrdtLoader:
    """Tests for CrdtLoader."""

    @pytest.mark.parametrize(
        "bucket_type,expected",
        [("counters", 0), ("sets", set()), ("maps", CrdtMap())],
    )
    def test_missing_key_uses_bucket_type_default(self, typed_store, bucket_type, expected):
        """Missing keys load the datatype's empty value."""
        loaded = CrdtLoader(typed_store).load(Bucket("b"), "missing", bucket_type)

        assert loaded.datatype.value == typed_store.get_bucket_type_props(bucket_type)["datatype"]
        assert loaded.value == expected

    def test_bucket_type_without_datatype(self, loader):
        """A plain bucket type has no CRDT default."""
        with pytest.raises(UnsupportedDatatypeError):
            loader.load(Bucket("b"), "missing")

    def test_top_level_flag_rejected(self, store, loader):
        """Flags only exist inside maps."""
        store.set_bucket_type_props("flags", {"datatype": "flag"})

        with pytest.raises(UnsupportedDatatypeError):
            loader.load(Bucket("b", "flags"), "missing")

    def test_context_changes_per_load(self, typed_store):
        """Every load mints a new context."""
        loader = CrdtLoader(typed_store)

        first = loader.load(Bucket("b", "counters"), "k").context
        second = loader.load(Bucket("b", "counters"), "k").context

        assert first != second
        assert loader.context == second

    def test_plain_record_is_not_a_crdt(self, store, loader):
        """A regular object under the key can't be loaded as a CRDT."""
        bucket = Bucket("b")
        store.put_record(bucket, "k", RecordCodec().encode(RObject(bucket, "k", raw_data=b"x")))

        with pytest.raises(RequestError):
            loader.load(bucket, "k")


class TestCrdtOperator:
    """Tests for CrdtOperator."""

    def test_counter_persists(self, typed_store, operator, loader):
        """Operations are stored and visible to the next load."""
        operator.operate(Bucket("b"), "hits", "counters", Operation(CrdtType.COUNTER, 5))
        operator.operate(Bucket("b"), "hits", "counters", Operation(CrdtType.COUNTER, -2))

        assert loader.load(Bucket("b"), "hits", "counters").value == 3

    def test_set_batch(self, typed_store, operator):
        """A batch folds in order."""
        result = operator.operate(
            Bucket("b"),
            "names",
            "sets",
            [
                Operation(CrdtType.SET, SetOp.of(add=["smith"])),
                Operation(CrdtType.SET, SetOp.of(add=["john"])),
                Operation(CrdtType.SET, SetOp.of(remove=["smith"])),
            ],
        )

        assert result.value == {"john"}
        assert result.key == "names"

    def test_nested_map_counter(self, typed_store, operator, loader):
        """Nested counters increment through map updates."""
        op = Operation(
            CrdtType.MAP,
            MapUpdate(CrdtType.MAP, "stats", MapUpdate(CrdtType.COUNTER, "views", 1)),
        )

        operator.operate(Bucket("b"), "page", "maps", op)
        operator.operate(Bucket("b"), "page", "maps", op)

        value = loader.load(Bucket("b"), "page", "maps").value
        assert value.maps["stats"].value_of(CrdtType.COUNTER, "views") == 2

        operator.operate(
            Bucket("b"),
            "page",
            "maps",
            Operation(
                CrdtType.MAP,
                MapUpdate(CrdtType.MAP, "stats", MapDelete(CrdtType.COUNTER, "views")),
            ),
        )
        value = loader.load(Bucket("b"), "page", "maps").value
        assert value.maps["stats"].value_of(CrdtType.COUNTER, "views") == 0

    def test_stored_content_type(self, typed_store, operator):
        """CRDT records carry a datatype content type."""
        operator.operate(Bucket("b"), "k", "sets", Operation(CrdtType.SET, SetOp.of(add=["a"])))

        record = typed_store.get_record(Bucket("b", "sets"), "k")
        assert record.content_type == "application/riak_set"

    def test_empty_batch(self, typed_store, operator):
        """At least one operation is required."""
        with pytest.raises(RequestError) as exc:
            operator.operate(Bucket("b"), "k", "sets", [])

        assert exc.value.code == "EMPTY_OPERATION"

    def test_type_mismatch(self, typed_store, operator):
        """Operations must match the stored datatype."""
        operator.operate(Bucket("b"), "k", "counters", Operation(CrdtType.COUNTER, 1))

        with pytest.raises(RequestError) as exc:
            operator.operate(
                Bucket("b"), "k", "counters", Operation(CrdtType.SET, SetOp.of(add=["a"]))
            )

        assert exc.value.code == "CRDT_TYPE_MISMATCH"

    def test_bucket_types_are_separate(self, typed_store, operator, loader):
        """The same bucket/key under two types holds two values."""
        typed_store.set_bucket_type_props("other_counters", {"datatype": "counter"})

        operator.operate(Bucket("b"), "k", "counters", Operation(CrdtType.COUNTER, 1))

        assert loader.load(Bucket("b"), "k", "other_counters").value == 0

    def test_concurrent_operations_serialize(self, typed_store, operator, loader):
        """Concurrent increments on one key are never lost."""
        threads, increments = 8, 100

        def worker():
            for _ in range(increments):
                operator.operate(Bucket("b"), "hits", "counters", Operation(CrdtType.COUNTER, 1))

        pool = [threading.Thread(target=worker) for _ in range(threads)]
        for thread in pool:
            thread.start()
        for thread in pool:
            thread.join()

        assert loader.load(Bucket("b"), "hits", "counters").value == threads * increments

    def test_counts_updates(self, typed_store, operator):
        """Each operate call bumps the update counter."""
        operator.operate(Bucket("b"), "k", "counters", Operation(CrdtType.COUNTER, 1))

        assert typed_store.stats()["crdt_updates_total"] == 1
