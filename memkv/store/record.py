"""
Record model and codec.

RObject is the client-side object a caller hands to the backend; the
store never keeps a reference to it. RecordCodec turns an RObject into
an immutable StoredRecord (computing the etag and minting a version
token) and turns stored records back into fresh RObjects.

Invariants:
    - A StoredRecord shares no mutable state with any RObject
    - Every encode mints a new version token and last-modified time
    - The etag is the hex MD5 of the payload bytes
"""

from __future__ import annotations

import base64
import copy
import hashlib
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, DefaultDict, Dict, FrozenSet, Optional, Set, Union

DEFAULT_BUCKET_TYPE = "default"

IndexTerm = Union[int, str]


@dataclass(frozen=True)
class Bucket:
    """A bucket, optionally scoped by bucket type.

    Attributes:
        name: Bucket name
        type: Bucket type name (None means the default type)
    """

    name: str
    type: Optional[str] = None

    @property
    def bucket_type(self) -> str:
        """Effective bucket type name."""
        return self.type or DEFAULT_BUCKET_TYPE


@dataclass(frozen=True)
class Link:
    """A link from one record to another."""

    bucket: str
    key: str
    tag: str = ""


def _new_indexes() -> DefaultDict[str, Set[IndexTerm]]:
    return defaultdict(set)


@dataclass
class RObject:
    """A record as seen by the calling client.

    Attributes:
        bucket: Owning bucket
        key: Record key
        raw_data: Payload (str payloads are stored as UTF-8)
        content_type: MIME type of the payload
        links: Outgoing links
        indexes: Secondary index name to set of terms
        meta: Free-form user metadata
        etag: Content hash (set by the store)
        last_modified: Last write time (set by the store)
        vclock: Opaque version token (set by the store)

    Example:
        >>> obj = RObject(Bucket("users"), "alice", raw_data=b"{}")
        >>> obj.indexes["age_int"].add(30)
    """

    bucket: Bucket
    key: str
    raw_data: Union[bytes, str] = b""
    content_type: str = "application/json"
    links: Set[Link] = field(default_factory=set)
    indexes: DefaultDict[str, Set[IndexTerm]] = field(default_factory=_new_indexes)
    meta: Dict[str, str] = field(default_factory=dict)
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    vclock: Optional[str] = None


@dataclass(frozen=True)
class StoredRecord:
    """Persisted record representation held by the store."""

    raw_data: bytes
    content_type: str
    links: FrozenSet[Link]
    indexes: Dict[str, FrozenSet[IndexTerm]]
    meta: Dict[str, str]
    etag: str
    last_modified: datetime
    vclock: str

    def to_metadata(self) -> Dict[str, Any]:
        """Metadata block exposed to map phase functions."""
        return {
            "etag": self.etag,
            "content-type": self.content_type,
            "index": {name: sorted(terms, key=str) for name, terms in self.indexes.items()},
            "last-modified": self.last_modified.isoformat(),
            "charset": charset_of(self.content_type),
        }


def charset_of(content_type: str) -> Optional[str]:
    """Extract the charset parameter from a content type, if any."""
    for param in content_type.split(";")[1:]:
        name, _, value = param.strip().partition("=")
        if name.lower() == "charset" and value:
            return value.strip('"')
    return None


class RecordCodec:
    """Builds stored records from client objects and back."""

    @staticmethod
    def new_version_token() -> str:
        """Mint an opaque, unique version token."""
        return base64.b64encode(uuid.uuid4().bytes).decode("ascii")

    @staticmethod
    def compute_etag(payload: bytes) -> str:
        return hashlib.md5(payload).hexdigest()

    def encode(self, robject: RObject) -> StoredRecord:
        """Build the persisted representation of a client object.

        The object's etag, last_modified and vclock are updated in place
        to match what was persisted.

        Args:
            robject: Client object to persist

        Returns:
            Immutable StoredRecord
        """
        raw = robject.raw_data
        payload = raw.encode("utf-8") if isinstance(raw, str) else bytes(raw)

        record = StoredRecord(
            raw_data=payload,
            content_type=robject.content_type,
            links=frozenset(robject.links),
            indexes={
                name: frozenset(terms)
                for name, terms in robject.indexes.items()
                if terms
            },
            meta=dict(robject.meta),
            etag=self.compute_etag(payload),
            last_modified=datetime.now(timezone.utc),
            vclock=self.new_version_token(),
        )

        robject.etag = record.etag
        robject.last_modified = record.last_modified
        robject.vclock = record.vclock
        return record

    def decode(self, record: StoredRecord, bucket: Bucket, key: str) -> RObject:
        """Load a fresh client object from a stored record."""
        indexes = _new_indexes()
        for name, terms in record.indexes.items():
            indexes[name] = set(terms)

        return RObject(
            bucket=bucket,
            key=key,
            raw_data=record.raw_data,
            content_type=record.content_type,
            links=set(record.links),
            indexes=indexes,
            meta=copy.deepcopy(record.meta),
            etag=record.etag,
            last_modified=record.last_modified,
            vclock=record.vclock,
        )
