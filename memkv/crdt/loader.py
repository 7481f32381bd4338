"""
CRDT loader: reads a key's CRDT value, or the bucket type's default.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import NotFoundError, UnsupportedDatatypeError
from ..store import MemoryStore, resolve_bucket
from ..store.store import BucketRef
from .types import DEFAULTS, CrdtType, decode_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedCrdt:
    """A loaded CRDT value.

    Attributes:
        datatype: Datatype of the value
        value: Native value (int, set, CrdtMap)
        context: Opaque causal context token (fresh per load)
    """

    datatype: CrdtType
    value: Any
    context: str


class CrdtLoader:
    """Loads and deserializes CRDT values from the store.

    Contexts are generated because they are meaningless in memory; they
    exist so callers can hand them back the way they would to a cluster.
    """

    DEFAULTS = DEFAULTS

    def __init__(self, store: MemoryStore) -> None:
        self.store = store
        self.context = str(uuid.uuid4())

    def load(
        self,
        bucket: BucketRef,
        key: str,
        bucket_type: Optional[str] = None,
    ) -> LoadedCrdt:
        """Load the CRDT stored at a key.

        Args:
            bucket: Bucket holding the key
            key: Key to load
            bucket_type: Bucket type scope (overrides bucket.type)

        Returns:
            LoadedCrdt with the stored value, or the datatype default
            when the key doesn't exist

        Raises:
            UnsupportedDatatypeError: If the key is missing and the bucket
                type has no counter/set/map datatype
            RequestError: If the stored value is not a CRDT
        """
        bucket = resolve_bucket(bucket, bucket_type)
        self.context = str(uuid.uuid4())

        try:
            record = self.store.get_record(bucket, key)
        except NotFoundError:
            props = self.store.get_bucket_type_props(bucket.bucket_type)
            raw_type = props.get("datatype")
            datatype = CrdtType.parse(raw_type, bucket.bucket_type)
            if datatype not in DEFAULTS:
                raise UnsupportedDatatypeError(raw_type, bucket.bucket_type)
            return LoadedCrdt(datatype, DEFAULTS[datatype](), self.context)

        datatype, value = decode_value(record.raw_data)
        return LoadedCrdt(datatype, value, self.context)

    def get_loader_for_value(self, value: Any) -> Any:
        """Values are already native in memory; returned unchanged."""
        return value
