"""
Store module for memkv - process-resident buckets, keys and registries.

This module handles:
- Host-keyed datasets shared by every handle on the same cluster
- Bucket and bucket type properties
- Record persistence through RecordCodec
- Inert search index/schema registries

Invariants:
    - Datasets live for the process lifetime unless reset
    - Stored records never alias client objects
"""

from .dataset import (
    DEFAULT_BUCKET_PROPS,
    DatasetRegistry,
    NodeDataset,
    SearchIndexEntry,
    SearchSchemaEntry,
    get_dataset_registry,
    reset_datasets,
)
from .record import Bucket, Link, RecordCodec, RObject, StoredRecord
from .store import MemoryStore, resolve_bucket

__all__ = [
    "DEFAULT_BUCKET_PROPS",
    "DatasetRegistry",
    "NodeDataset",
    "SearchIndexEntry",
    "SearchSchemaEntry",
    "get_dataset_registry",
    "reset_datasets",
    "Bucket",
    "Link",
    "RecordCodec",
    "RObject",
    "StoredRecord",
    "MemoryStore",
    "resolve_bucket",
]
