"""
In-memory bucket store for memkv.

This module implements raw CRUD on top of a NodeDataset:
- Records keyed by (bucket type, bucket, key)
- Bucket properties with a fixed default template
- Bucket type properties (notably the CRDT datatype)
- Inert search index and schema registries

Invariants:
    - Keys list in the order they were first inserted
    - Records are replaced wholesale on every put
    - Clearing bucket props never touches keys
    - Bucket type property keys are always strings

How to change safely:
    - Every public method must take dataset.lock before touching state
    - Return copies of mutable state, never the live dicts
"""

from __future__ import annotations

import copy
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from ..config import SearchConfig, StoreConfig
from ..errors import NotFoundError, RequestError
from .dataset import (
    BucketData,
    NodeDataset,
    SearchIndexEntry,
    SearchSchemaEntry,
    default_bucket_props,
)
from .record import DEFAULT_BUCKET_TYPE, Bucket, StoredRecord

logger = logging.getLogger(__name__)

BucketRef = Union[Bucket, str]


def resolve_bucket(bucket: BucketRef, bucket_type: Optional[str] = None) -> Bucket:
    """Normalize a bucket reference.

    An explicit bucket_type overrides the type carried by a Bucket.
    """
    if isinstance(bucket, Bucket):
        if bucket_type is None or bucket_type == bucket.type:
            return bucket
        return Bucket(bucket.name, bucket_type)
    return Bucket(bucket, bucket_type)


def _prop_key(key: Any) -> str:
    if isinstance(key, Enum):
        return str(key.value)
    return str(key)


class MemoryStore:
    """Raw record, property and registry access for one dataset.

    Thread safety:
        All operations take the dataset's re-entrant lock.

    Example:
        >>> store = MemoryStore(dataset)
        >>> store.put_record(Bucket("users"), "alice", record)
        >>> store.list_keys(Bucket("users"))
        ['alice']
    """

    def __init__(
        self,
        dataset: NodeDataset,
        config: Optional[StoreConfig] = None,
        search_config: Optional[SearchConfig] = None,
    ) -> None:
        self.dataset = dataset
        self.config = config or StoreConfig()
        self.search_config = search_config or SearchConfig()

    @property
    def lock(self):
        """The dataset lock (re-entrant)."""
        return self.dataset.lock

    def _bucket_data(self, bucket: Bucket) -> BucketData:
        return self.dataset.bucket(bucket.bucket_type, bucket.name, self.config.default_n_val)

    # Records

    def get_record(self, bucket: Bucket, key: str) -> StoredRecord:
        """Get a stored record.

        Raises:
            NotFoundError: If the key is absent
        """
        with self.lock:
            self.dataset.stats["node_gets_total"] += 1
            record = self._bucket_data(bucket).keys.get(key)
        if record is None:
            raise NotFoundError(
                f"Key not found: {bucket.bucket_type}/{bucket.name}/{key}",
                resource_type="key",
                resource_id=key,
            )
        return record

    def put_record(self, bucket: Bucket, key: str, record: StoredRecord) -> None:
        """Store a record, replacing any previous one."""
        with self.lock:
            self.dataset.stats["node_puts_total"] += 1
            self._bucket_data(bucket).keys[key] = record

        logger.debug(
            "Stored record",
            extra={
                "bucket_type": bucket.bucket_type,
                "bucket": bucket.name,
                "key": key,
                "etag": record.etag,
            },
        )

    def delete_record(self, bucket: Bucket, key: str) -> bool:
        """Delete a record.

        Returns:
            True (deleting an absent key succeeds)
        """
        with self.lock:
            existed = self._bucket_data(bucket).keys.pop(key, None) is not None

        logger.debug(
            "Deleted record",
            extra={
                "bucket_type": bucket.bucket_type,
                "bucket": bucket.name,
                "key": key,
                "existed": existed,
            },
        )
        return True

    def list_keys(self, bucket: Bucket) -> List[str]:
        """Keys of a bucket in first-insertion order."""
        with self.lock:
            return list(self._bucket_data(bucket).keys)

    def list_buckets(self, bucket_type: Optional[str] = None) -> List[Bucket]:
        """Buckets of a bucket type.

        Only buckets holding at least one key are listed unless
        StoreConfig.list_empty_buckets is set.
        """
        wanted = bucket_type or DEFAULT_BUCKET_TYPE
        with self.lock:
            return [
                Bucket(name, bucket_type)
                for (type_name, name), data in self.dataset.buckets.items()
                if type_name == wanted and (data.keys or self.config.list_empty_buckets)
            ]

    # Bucket properties

    def get_bucket_props(self, bucket: Bucket) -> Dict[str, Any]:
        with self.lock:
            return copy.deepcopy(self._bucket_data(bucket).props)

    def set_bucket_props(self, bucket: Bucket, props: Mapping[Any, Any]) -> Dict[str, Any]:
        """Merge properties into a bucket's properties.

        Returns:
            The bucket's full properties after the merge
        """
        with self.lock:
            data = self._bucket_data(bucket)
            data.props.update({_prop_key(k): v for k, v in props.items()})
            return copy.deepcopy(data.props)

    def clear_bucket_props(self, bucket: Bucket) -> Dict[str, Any]:
        """Reset a bucket's properties to the default template."""
        with self.lock:
            data = self._bucket_data(bucket)
            data.props = default_bucket_props(self.config.default_n_val)
            return copy.deepcopy(data.props)

    # Bucket type properties

    def get_bucket_type_props(self, bucket_type: Optional[str]) -> Dict[str, Any]:
        with self.lock:
            return dict(self.dataset.bucket_types.get(bucket_type or DEFAULT_BUCKET_TYPE, {}))

    def set_bucket_type_props(
        self, bucket_type: Optional[str], props: Mapping[Any, Any]
    ) -> Dict[str, Any]:
        """Merge properties into a bucket type, normalizing keys to strings."""
        name = bucket_type or DEFAULT_BUCKET_TYPE
        with self.lock:
            current = self.dataset.bucket_types.setdefault(name, {})
            current.update({_prop_key(k): v for k, v in props.items()})
            logger.debug("Updated bucket type props", extra={"bucket_type": name})
            return dict(current)

    def reset_bucket_type_props(self, bucket_type: Optional[str]) -> None:
        with self.lock:
            self.dataset.bucket_types.pop(bucket_type or DEFAULT_BUCKET_TYPE, None)

    # Search registries (inert, no query execution)

    def create_search_index(
        self,
        name: str,
        schema: Optional[str] = None,
        n_val: Optional[int] = None,
    ) -> bool:
        with self.lock:
            self.dataset.search_indexes[name] = SearchIndexEntry(
                name=name,
                schema=schema or self.search_config.default_schema,
                n_val=n_val or self.search_config.default_n_val,
            )
        return True

    def get_search_index(self, name: str) -> SearchIndexEntry:
        """Get a search index.

        Raises:
            RequestError: If the index does not exist
        """
        with self.lock:
            entry = self.dataset.search_indexes.get(name)
        if entry is None:
            raise RequestError("notfound", code=0, details={"search_index": name})
        return copy.copy(entry)

    def list_search_indexes(self) -> List[SearchIndexEntry]:
        with self.lock:
            return [copy.copy(entry) for entry in self.dataset.search_indexes.values()]

    def update_search_index(self, name: str, schema: str) -> bool:
        """Replace the schema of an existing search index."""
        with self.lock:
            entry = self.dataset.search_indexes.get(name)
            if entry is None:
                raise RequestError("notfound", code=0, details={"search_index": name})
            entry.schema = schema
        return True

    def delete_search_index(self, name: str) -> bool:
        with self.lock:
            self.dataset.search_indexes.pop(name, None)
        return True

    def create_search_schema(self, name: str, content: str) -> bool:
        with self.lock:
            self.dataset.search_schemas[name] = SearchSchemaEntry(name=name, content=content)
        return True

    def get_search_schema(self, name: str) -> SearchSchemaEntry:
        """Get a search schema.

        Raises:
            RequestError: If the schema does not exist
        """
        with self.lock:
            entry = self.dataset.search_schemas.get(name)
        if entry is None:
            raise RequestError("notfound", code=0, details={"search_schema": name})
        return copy.copy(entry)

    def stats(self) -> Dict[str, int]:
        """Operation counters for this dataset."""
        with self.lock:
            return dict(self.dataset.stats)
