"""
Map/reduce job description models.

A MapReduceJob names its inputs (a whole bucket or explicit entries) and
an ordered list of phases. Jobs can be built directly, validated from
plain dicts, or assembled with the fluent add()/map()/reduce() helpers.

Example:
    >>> job = MapReduceJob().add("users").map("function(v) { return [v.data]; }", keep=True)
    >>> backend.mapred(job)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field


class PhaseKind(str, Enum):
    """Kinds of map/reduce phases."""

    MAP = "map"
    REDUCE = "reduce"
    LINK = "link"


class Phase(BaseModel):
    """One step of a map/reduce query."""

    kind: PhaseKind = Field(..., description="map, reduce or link")
    language: str = Field(default="javascript", description="Phase function language")
    function: str = Field(default="", description="Phase function source or name")
    args: List[Any] = Field(default_factory=list, description="Static phase arguments")
    keep: bool = Field(default=False, description="Include this phase's results in the output")


class MapReduceInput(BaseModel):
    """One explicit input of a map phase.

    data/content_type, when given, replace the stored payload.
    """

    bucket: str
    key: str
    bucket_type: Optional[str] = None
    keydata: Any = None
    data: Optional[Union[bytes, str]] = None
    content_type: Optional[str] = None

    def as_list(self) -> List[Any]:
        """[bucket, key] (plus keydata) form handed to reduce phases."""
        if self.keydata is None:
            return [self.bucket, self.key]
        return [self.bucket, self.key, self.keydata]


class MapReduceJob(BaseModel):
    """A complete map/reduce job."""

    inputs: Union[str, List[Any]] = Field(
        default_factory=list, description="Bucket name or explicit input entries"
    )
    bucket_type: Optional[str] = Field(default=None, description="Bucket type for bucket inputs")
    query: List[Phase] = Field(default_factory=list)

    def add(
        self,
        bucket: str,
        key: Optional[str] = None,
        keydata: Any = None,
        bucket_type: Optional[str] = None,
    ) -> MapReduceJob:
        """Add an input: a whole bucket (no key) or one bucket/key pair."""
        if key is None:
            self.inputs = bucket
            self.bucket_type = bucket_type
            return self

        if isinstance(self.inputs, str):
            raise ValueError("Cannot add keys to a whole-bucket input")
        self.inputs.append(
            MapReduceInput(bucket=bucket, key=key, keydata=keydata, bucket_type=bucket_type)
        )
        return self

    def map(self, function: str, keep: bool = False, args: Optional[List[Any]] = None,
            language: str = "javascript") -> MapReduceJob:
        self.query.append(
            Phase(kind=PhaseKind.MAP, function=function, keep=keep, args=args or [],
                  language=language)
        )
        return self

    def reduce(self, function: str, keep: bool = False, args: Optional[List[Any]] = None,
               language: str = "javascript") -> MapReduceJob:
        self.query.append(
            Phase(kind=PhaseKind.REDUCE, function=function, keep=keep, args=args or [],
                  language=language)
        )
        return self

    def link(self, keep: bool = False) -> MapReduceJob:
        self.query.append(Phase(kind=PhaseKind.LINK, keep=keep))
        return self
