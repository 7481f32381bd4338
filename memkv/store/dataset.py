"""
Host-keyed dataset registry.

A NodeDataset holds everything a simulated cluster knows: buckets,
bucket type properties and the search registries. Every backend handle
built against a host that is already registered attaches to the same
dataset, which is how separate handles see a shared "cluster" without
networking.

Invariants:
    - One dataset per group of hosts registered together
    - A dataset lives until reset() is called on its registry
    - All mutation of a dataset happens under dataset.lock

How to change safely:
    - reset_datasets() is for test isolation only
    - Keep the lock re-entrant: store operations call each other
"""

from __future__ import annotations

import copy
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from .record import StoredRecord

logger = logging.getLogger(__name__)

# Properties every bucket starts with (and returns to on clear)
DEFAULT_BUCKET_PROPS: Dict[str, Any] = {
    "n_val": 3,
    "precommit": [],
    "has_precommit": True,
    "postcommit": [],
    "has_postcommit": True,
    "chash_keyfun": {"mod": "riak_core_util", "fun": "chash_std_keyfun"},
    "linkfun": {"mod": "riak_kv_wm_link_walker", "fun": "mapreduce_linkfun"},
    "old_vclock": 86400,
    "young_vclock": 20,
    "big_vclock": 50,
    "small_vclock": 50,
    "r": "quorum",
    "w": "quorum",
    "dw": "quorum",
    "rw": "quorum",
    "pr": 0,
    "pw": 0,
    "notfound_ok": True,
}


def default_bucket_props(n_val: int = 3) -> Dict[str, Any]:
    """Fresh copy of the default bucket property template."""
    props = copy.deepcopy(DEFAULT_BUCKET_PROPS)
    props["n_val"] = n_val
    return props


@dataclass
class BucketData:
    """Properties and key table of one bucket."""

    props: Dict[str, Any]
    keys: Dict[str, StoredRecord] = field(default_factory=dict)


@dataclass
class SearchIndexEntry:
    """Registered search index (inert)."""

    name: str
    schema: str
    n_val: int


@dataclass
class SearchSchemaEntry:
    """Registered search schema (inert)."""

    name: str
    content: str


class NodeDataset:
    """All process-resident data for one simulated cluster.

    Attributes:
        hosts: Hosts that resolve to this dataset
        buckets: (bucket_type, bucket_name) to BucketData
        bucket_types: bucket_type to properties
        search_indexes: Registered search indexes by name
        search_schemas: Registered search schemas by name
        stats: Operation counters
        lock: Re-entrant lock guarding all of the above
    """

    def __init__(self, hosts: Iterable[str]) -> None:
        self.hosts = frozenset(hosts)
        self.buckets: Dict[Tuple[str, str], BucketData] = {}
        self.bucket_types: Dict[str, Dict[str, Any]] = {}
        self.search_indexes: Dict[str, SearchIndexEntry] = {}
        self.search_schemas: Dict[str, SearchSchemaEntry] = {}
        self.stats: Counter = Counter()
        self.lock = threading.RLock()

    def bucket(self, bucket_type: str, name: str, n_val: int = 3) -> BucketData:
        """Get a bucket, creating it on first touch."""
        with self.lock:
            data = self.buckets.get((bucket_type, name))
            if data is None:
                data = BucketData(props=default_bucket_props(n_val))
                self.buckets[(bucket_type, name)] = data
            return data


class DatasetRegistry:
    """Process-scoped map of host to NodeDataset.

    Thread-safety:
        Attach and reset are serialized by an internal lock.

    Example:
        >>> registry = DatasetRegistry()
        >>> a = registry.attach(["127.0.0.1", "10.0.0.2"])
        >>> b = registry.attach(["10.0.0.2"])
        >>> a is b
        True
    """

    def __init__(self) -> None:
        self._datasets: Dict[str, NodeDataset] = {}
        self._lock = threading.Lock()

    def attach(self, hosts: Iterable[str]) -> NodeDataset:
        """Get the dataset shared by these hosts, creating it if needed.

        The first host with an existing dataset wins; every host in the
        list is then bound to that dataset.

        Args:
            hosts: Host names of the nodes a handle talks to

        Returns:
            The shared NodeDataset
        """
        hosts = list(hosts)
        if not hosts:
            raise ValueError("At least one node host is required")

        with self._lock:
            dataset = next(
                (self._datasets[host] for host in hosts if host in self._datasets),
                None,
            )
            if dataset is None:
                dataset = NodeDataset(hosts)
                logger.info("Created node dataset", extra={"hosts": hosts})
            for host in hosts:
                previous = self._datasets.get(host)
                if previous is not None and previous is not dataset:
                    logger.warning(
                        "Host moved to a different node dataset",
                        extra={"host": host, "hosts": hosts},
                    )
                self._datasets[host] = dataset
            return dataset

    def get(self, host: str) -> Optional[NodeDataset]:
        """Get the dataset bound to a host, if any."""
        with self._lock:
            return self._datasets.get(host)

    def hosts(self) -> list[str]:
        """All registered hosts."""
        with self._lock:
            return list(self._datasets)

    def reset(self) -> None:
        """Drop every dataset (for testing only)."""
        with self._lock:
            count = len(set(map(id, self._datasets.values())))
            self._datasets.clear()
        logger.info("Node datasets reset", extra={"datasets": count})


# Global registry instance
_global_registry = DatasetRegistry()


def get_dataset_registry() -> DatasetRegistry:
    """Get the process-wide dataset registry."""
    return _global_registry


def reset_datasets() -> None:
    """Reset the process-wide registry (for test cleanup only).

    Warning: handles created before the reset keep their old dataset.
    """
    _global_registry.reset()
