"""
MemoryBackend - the handle a client library talks to.

A MemoryBackend is bound to the hosts of the nodes a client was
configured with. Handles whose hosts overlap share one NodeDataset, so
a test can build several clients and see the same "cluster".

Every call is synchronous and in-process. Deprecated or unsupported
capabilities (full-text search, link walking, Luwak file storage) raise
UnsupportedOperationError immediately.

Invariants:
    - Objects passed in are copied on store; objects returned are fresh
    - Bucket type scoping: an explicit bucket_type overrides bucket.type
    - teardown() releases nothing; datasets outlive handles

How to change safely:
    - New operations delegate to the store/engines, never touch the
      dataset directly
    - Keep unsupported operations raising, tests assert on them
"""

from __future__ import annotations

import logging
import struct
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .config import BackendConfig
from .crdt import CrdtLoader, CrdtOperator
from .errors import NotFoundError, UnsupportedOperationError
from .index import IndexCollection, IndexEngine
from .index.engine import Matcher
from .mapreduce import MapReduceExecutor, MapReduceJob, PhaseExecutor
from .store import (
    Bucket,
    DatasetRegistry,
    MemoryStore,
    RecordCodec,
    RObject,
    SearchIndexEntry,
    SearchSchemaEntry,
    get_dataset_registry,
    resolve_bucket,
)
from .store.store import BucketRef

logger = logging.getLogger(__name__)

SERVER_VERSION = "2.0"

_LUWAK_DEPRECATED = "Luwak is deprecated and will not be supported"


class MemoryBackend:
    """In-memory stand-in for a cluster connection.

    Attributes:
        hosts: Hosts this handle is bound to (the first is "its" node)
        config: Backend configuration
        store: Raw store over the shared dataset
        codec: Record codec
        crdt_loader: CRDT loader
        crdt_operator: CRDT operator

    Example:
        >>> backend = MemoryBackend(["127.0.0.1"])
        >>> obj = RObject(Bucket("docs"), "greeting", raw_data=b"hello", content_type="text/plain")
        >>> _ = backend.store_object(obj)
        >>> backend.fetch_object("docs", "greeting").raw_data
        b'hello'
    """

    def __init__(
        self,
        nodes: Sequence[str] = ("127.0.0.1",),
        config: Optional[BackendConfig] = None,
        phase_executor: Optional[PhaseExecutor] = None,
        registry: Optional[DatasetRegistry] = None,
    ) -> None:
        """Initialize a backend handle.

        Args:
            nodes: Hosts of the nodes the client talks to
            config: Optional configuration (loaded from env if not provided)
            phase_executor: Runs map/reduce phase functions
            registry: Dataset registry (the process-wide one by default)
        """
        self.hosts = list(nodes)
        if config is None:
            config = BackendConfig.from_env()
            config.log_config()
        self.config = config
        self.dataset = (registry or get_dataset_registry()).attach(self.hosts)

        self.store = MemoryStore(self.dataset, self.config.store, self.config.search)
        self.codec = RecordCodec()
        self.index_engine = IndexEngine(self.store)
        self.crdt_loader = CrdtLoader(self.store)
        self.crdt_operator = CrdtOperator(self.store, self.crdt_loader, self.codec)
        self.mapreduce = MapReduceExecutor(self.store, phase_executor, self.config.mapreduce)

        self.set_client_id(0)

    @property
    def node(self) -> str:
        return self.hosts[0]

    def ping(self) -> bool:
        return True

    def get_client_id(self) -> Union[bytes, str]:
        return self._client_id

    def set_client_id(self, client_id: Any) -> None:
        """Set the client id; integers are packed as 4 big-endian bytes."""
        if isinstance(client_id, int):
            self._client_id: Union[bytes, str] = struct.pack(">I", client_id)
        else:
            self._client_id = str(client_id)

    def server_info(self) -> Dict[str, str]:
        return {"node": f"riak@{self.node}", "server_version": SERVER_VERSION}

    def stats(self) -> Dict[str, Any]:
        """Operation counters for the shared dataset."""
        stats: Dict[str, Any] = {
            "node_gets_total": 0,
            "node_puts_total": 0,
            "vnode_index_reads_total": 0,
            "pipeline_create_count": 0,
            "crdt_updates_total": 0,
        }
        stats.update(self.store.stats())
        stats["nodename"] = f"riak@{self.node}"
        stats["connected_nodes"] = [f"riak@{host}" for host in self.hosts[1:]]
        stats["ring_members"] = [f"riak@{host}" for host in self.hosts]
        return stats

    # Objects

    def fetch_object(
        self, bucket: BucketRef, key: str, bucket_type: Optional[str] = None
    ) -> RObject:
        """Fetch a record as a fresh client object.

        Raises:
            NotFoundError: If the key is absent
        """
        bucket = resolve_bucket(bucket, bucket_type)
        return self.codec.decode(self.store.get_record(bucket, key), bucket, key)

    def reload_object(self, robject: RObject, bucket_type: Optional[str] = None) -> RObject:
        """Refresh a client object in place from the store.

        Raises:
            NotFoundError: If the key is absent
        """
        fresh = self.fetch_object(robject.bucket, robject.key, bucket_type)
        robject.raw_data = fresh.raw_data
        robject.content_type = fresh.content_type
        robject.links = fresh.links
        robject.indexes = fresh.indexes
        robject.meta = fresh.meta
        robject.etag = fresh.etag
        robject.last_modified = fresh.last_modified
        robject.vclock = fresh.vclock
        return robject

    def store_object(self, robject: RObject, bucket_type: Optional[str] = None) -> RObject:
        """Persist a client object, updating its etag and version token."""
        bucket = resolve_bucket(robject.bucket, bucket_type)
        self.store.put_record(bucket, robject.key, self.codec.encode(robject))
        return robject

    def delete_object(
        self, bucket: BucketRef, key: str, bucket_type: Optional[str] = None
    ) -> bool:
        return self.store.delete_record(resolve_bucket(bucket, bucket_type), key)

    # Legacy counters

    def get_counter(
        self, bucket: BucketRef, key: str, bucket_type: Optional[str] = None
    ) -> int:
        """Value of a legacy counter, 0 if it was never incremented."""
        try:
            record = self.store.get_record(resolve_bucket(bucket, bucket_type), key)
        except NotFoundError:
            return 0
        return int(record.raw_data)

    def post_counter(
        self, bucket: BucketRef, key: str, amount: int, bucket_type: Optional[str] = None
    ) -> None:
        """Add amount (may be negative) to a legacy counter."""
        bucket = resolve_bucket(bucket, bucket_type)
        with self.store.lock:
            value = self.get_counter(bucket, key) + amount
            robject = RObject(
                bucket=bucket,
                key=key,
                raw_data=str(value),
                content_type="application/riak_pncounter",
            )
            self.store.put_record(bucket, key, self.codec.encode(robject))
        return None

    # Bucket properties

    def get_bucket_props(
        self, bucket: BucketRef, bucket_type: Optional[str] = None
    ) -> Dict[str, Any]:
        return self.store.get_bucket_props(resolve_bucket(bucket, bucket_type))

    def set_bucket_props(
        self, bucket: BucketRef, props: Mapping[Any, Any], bucket_type: Optional[str] = None
    ) -> Dict[str, Any]:
        return self.store.set_bucket_props(resolve_bucket(bucket, bucket_type), props)

    def clear_bucket_props(
        self, bucket: BucketRef, bucket_type: Optional[str] = None
    ) -> Dict[str, Any]:
        return self.store.clear_bucket_props(resolve_bucket(bucket, bucket_type))

    def reset_bucket_props(
        self, bucket: BucketRef, bucket_type: Optional[str] = None
    ) -> Dict[str, Any]:
        return self.clear_bucket_props(bucket, bucket_type)

    def get_bucket_type_props(self, bucket_type: Optional[str]) -> Dict[str, Any]:
        return self.store.get_bucket_type_props(bucket_type)

    def set_bucket_type_props(
        self, bucket_type: Optional[str], props: Mapping[Any, Any]
    ) -> Dict[str, Any]:
        return self.store.set_bucket_type_props(bucket_type, props)

    def reset_bucket_type_props(self, bucket_type: Optional[str]) -> None:
        self.store.reset_bucket_type_props(bucket_type)

    # Listing

    def list_keys(self, bucket: BucketRef, bucket_type: Optional[str] = None) -> List[str]:
        return self.store.list_keys(resolve_bucket(bucket, bucket_type))

    def list_buckets(self, bucket_type: Optional[str] = None) -> List[Bucket]:
        return self.store.list_buckets(bucket_type)

    # Queries

    def get_index(
        self,
        bucket: BucketRef,
        index: str,
        query: Matcher,
        return_terms: bool = False,
        max_results: Optional[int] = None,
        continuation: Optional[str] = None,
        bucket_type: Optional[str] = None,
    ) -> IndexCollection:
        """Query a secondary index (see IndexEngine.query)."""
        return self.index_engine.query(
            resolve_bucket(bucket, bucket_type),
            index,
            query,
            return_terms=return_terms,
            max_results=max_results,
            continuation=continuation,
        )

    def mapred(self, job: Union[MapReduceJob, Mapping]) -> List[Any]:
        """Run a map/reduce job (see MapReduceExecutor.run)."""
        return self.mapreduce.run(job)

    def search(self, index: str, query: str, **options: Any) -> Any:
        raise UnsupportedOperationError("search", "Full-text search is not supported")

    def link_walk(self, robject: RObject, walk_specs: Any) -> Any:
        raise UnsupportedOperationError(
            "link_walk", "Link walking is deprecated and will not be supported"
        )

    # Search registries

    def create_search_index(
        self, name: str, schema: Optional[str] = None, n_val: Optional[int] = None
    ) -> bool:
        return self.store.create_search_index(name, schema, n_val)

    def get_search_index(self, name: str) -> SearchIndexEntry:
        return self.store.get_search_index(name)

    def list_search_indexes(self) -> List[SearchIndexEntry]:
        return self.store.list_search_indexes()

    def update_search_index(self, name: str, schema: str) -> bool:
        return self.store.update_search_index(name, schema)

    def delete_search_index(self, name: str) -> bool:
        return self.store.delete_search_index(name)

    def create_search_schema(self, name: str, content: str) -> bool:
        return self.store.create_search_schema(name, content)

    def get_search_schema(self, name: str) -> SearchSchemaEntry:
        return self.store.get_search_schema(name)

    # Legacy file storage

    def get_file(self, filename: str) -> Any:
        raise UnsupportedOperationError("get_file", _LUWAK_DEPRECATED)

    def file_exists(self, filename: str) -> bool:
        raise UnsupportedOperationError("file_exists", _LUWAK_DEPRECATED)

    def delete_file(self, filename: str) -> bool:
        raise UnsupportedOperationError("delete_file", _LUWAK_DEPRECATED)

    def store_file(self, *args: Any) -> Any:
        raise UnsupportedOperationError("store_file", _LUWAK_DEPRECATED)

    def teardown(self) -> None:
        """Nothing to release; datasets outlive handles."""
        return None
