"""
memkv - in-process emulation of a Riak-style key/value cluster.

This package lets client libraries and their test suites run against a
cluster's data-handling semantics without a live cluster:
- Buckets, bucket types and their properties
- Records with links, secondary indexes and metadata
- Secondary index queries with ranges, terms and pagination
- CRDT counters, sets and recursively nested maps
- Map/reduce pipelines over a pluggable phase executor

Architecture:
    ┌──────────────┐     ┌──────────────────────────────────────────┐
    │ Client layer │────▶│               MemoryBackend              │
    └──────────────┘     └───┬──────────┬───────────┬───────────┬───┘
                             │          │           │           │
                             ▼          ▼           ▼           ▼
                       ┌─────────┐ ┌─────────┐ ┌─────────┐ ┌──────────┐
                       │ Memory  │ │ Index   │ │ Crdt    │ │ MapReduce│
                       │ Store   │ │ Engine  │ │ Engine  │ │ Executor │
                       └────┬────┘ └────┬────┘ └────┬────┘ └────┬─────┘
                            └───────────┴─────┬─────┴───────────┘
                                              ▼
                                 ┌─────────────────────────┐
                                 │ NodeDataset (per host)  │
                                 └─────────────────────────┘

Invariants:
    - Handles built for the same host share one dataset
    - Datasets live for the process lifetime unless reset_datasets() is called
    - Every call is synchronous; dataset mutation is serialized by a lock
    - Unsupported capabilities raise, they never degrade silently

How to change safely:
    - Call reset_datasets() between tests
    - Add CRDT datatypes through the merge table, not new branches
"""

from ._version import __version__
from .backend import MemoryBackend
from .config import BackendConfig
from .errors import (
    ConfigError,
    MemKvError,
    NotFoundError,
    RequestError,
    UnsupportedDatatypeError,
    UnsupportedLanguageError,
    UnsupportedOperationError,
)
from .store import Bucket, Link, RObject, reset_datasets

__all__ = [
    "__version__",
    "MemoryBackend",
    "BackendConfig",
    "ConfigError",
    "MemKvError",
    "NotFoundError",
    "RequestError",
    "UnsupportedDatatypeError",
    "UnsupportedLanguageError",
    "UnsupportedOperationError",
    "Bucket",
    "Link",
    "RObject",
    "reset_datasets",
]
