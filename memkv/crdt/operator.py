"""
CRDT operator: applies a batch of operations to a key and persists it.

Invariants:
    - Load, merge and store for one call run under the dataset lock
    - Operations are folded in the order given
    - The first operation's type is the datatype of the key
    - No optimistic concurrency: the last writer wins
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Union

from ..errors import RequestError
from ..store import MemoryStore, RecordCodec, RObject, resolve_bucket
from ..store.store import BucketRef
from .loader import CrdtLoader
from .merge import merge
from .types import CrdtType, Operation, encode_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperateResult:
    """Result of an operate() call.

    Attributes:
        key: Key that was updated
        value: Merged value as persisted
        context: Fresh causal context token
    """

    key: str
    value: Any
    context: str


class CrdtOperator:
    """Merges CRDT operations into stored values.

    Example:
        >>> operator.operate(
        ...     Bucket("carts"), "alice", "sets",
        ...     [Operation(CrdtType.SET, SetOp.of(add=["apple"]))],
        ... )
        OperateResult(key='alice', value={'apple'}, context='...')
    """

    def __init__(
        self,
        store: MemoryStore,
        loader: CrdtLoader,
        codec: Optional[RecordCodec] = None,
    ) -> None:
        self.store = store
        self.loader = loader
        self.codec = codec or RecordCodec()

    def operate(
        self,
        bucket: BucketRef,
        key: str,
        bucket_type: Optional[str],
        operations: Union[Operation, Iterable[Operation]],
    ) -> OperateResult:
        """Apply operations to the value at a key.

        Args:
            bucket: Bucket holding the key
            key: Key to update
            bucket_type: Bucket type scope (overrides bucket.type)
            operations: One operation or a batch

        Returns:
            OperateResult with the merged value

        Raises:
            RequestError: If there are no operations, or they don't match
                the stored datatype
            UnsupportedDatatypeError: If no datatype can be determined
        """
        ops: List[Operation] = (
            [operations] if isinstance(operations, Operation) else list(operations)
        )
        if not ops:
            raise RequestError("No CRDT operations given", code="EMPTY_OPERATION")

        bucket = resolve_bucket(bucket, bucket_type)
        datatype = CrdtType.parse(ops[0].type, bucket.bucket_type)

        with self.store.lock:
            loaded = self.loader.load(bucket, key)
            if loaded.datatype is not datatype:
                raise RequestError(
                    f"Operation type '{datatype.value}' does not match "
                    f"stored type '{loaded.datatype.value}'",
                    code="CRDT_TYPE_MISMATCH",
                    details={"key": key, "bucket": bucket.name},
                )

            data = loaded.value
            for op in ops:
                data = merge(data, datatype, op.value)

            robject = RObject(
                bucket=bucket,
                key=key,
                raw_data=encode_value(datatype, data),
                content_type=f"application/riak_{datatype.value}",
            )
            self.store.put_record(bucket, key, self.codec.encode(robject))
            self.store.dataset.stats["crdt_updates_total"] += 1

        logger.debug(
            "Applied CRDT operations",
            extra={
                "bucket_type": bucket.bucket_type,
                "bucket": bucket.name,
                "key": key,
                "datatype": datatype.value,
                "operations": len(ops),
            },
        )
        return OperateResult(key=key, value=data, context=str(uuid.uuid4()))
