"""
Secondary index query engine.

Answers equality and inclusive range queries against the per-record
index terms held by the store. Results keep bucket key order, list each
key once, optionally track which term matched which keys, and page
through the full match sequence with an offset continuation.

Invariants:
    - Keys are scanned in bucket insertion order
    - A key appears at most once in a result, at its first match
    - A continuation is the decimal offset of the next page
    - Records deleted mid-scan are skipped, never raised

How to change safely:
    - Keep term coercion symmetric between literal and range queries
    - Continuations handed out must stay valid for an unchanged bucket
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import NotFoundError, RequestError
from ..store import Bucket, MemoryStore
from ..store.record import IndexTerm

logger = logging.getLogger(__name__)

_NO_MATCH = object()


@dataclass(frozen=True)
class IndexRange:
    """Inclusive range of index terms.

    If either endpoint is a string the whole range compares as strings.
    """

    start: IndexTerm
    end: IndexTerm

    def normalized(self) -> IndexRange:
        if isinstance(self.start, str) or isinstance(self.end, str):
            return IndexRange(str(self.start), str(self.end))
        return self

    def __contains__(self, value: Any) -> bool:
        return self.start <= value <= self.end


Matcher = Union[IndexTerm, IndexRange, Tuple[IndexTerm, IndexTerm]]


class IndexCollection(list):
    """Ordered keys returned by an index query.

    Attributes:
        with_terms: Term to ordered keys (only when terms were requested)
        continuation: Token for the next page, None when nothing is left
    """

    def __init__(
        self,
        keys: List[str] = (),
        with_terms: Optional[Dict[IndexTerm, List[str]]] = None,
        continuation: Optional[str] = None,
    ) -> None:
        super().__init__(keys)
        self.with_terms = with_terms
        self.continuation = continuation


def _coerce(term: IndexTerm, like: IndexTerm) -> Any:
    """Coerce an indexed term to the type of a query value."""
    if isinstance(like, str):
        return str(term)
    if isinstance(term, str):
        for number in (int, float):
            try:
                return number(term)
            except ValueError:
                continue
        return _NO_MATCH
    return term


def _sorted_terms(terms) -> List[IndexTerm]:
    # Numbers before strings; a record's terms have no inherent order
    return sorted(terms, key=lambda t: (isinstance(t, str), t))


def _parse_continuation(continuation: Optional[str]) -> int:
    if continuation is None:
        return 0
    try:
        offset = int(continuation)
    except (TypeError, ValueError):
        offset = -1
    if offset < 0:
        raise RequestError(
            f"Invalid continuation: {continuation!r}",
            code="INVALID_CONTINUATION",
            details={"continuation": continuation},
        )
    return offset


class IndexEngine:
    """Runs secondary index queries against a MemoryStore.

    Example:
        >>> engine = IndexEngine(store)
        >>> engine.query(Bucket("users"), "age_int", IndexRange(20, 30))
        ['alice', 'bob']
    """

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def query(
        self,
        bucket: Bucket,
        index_name: str,
        matcher: Matcher,
        return_terms: bool = False,
        max_results: Optional[int] = None,
        continuation: Optional[str] = None,
    ) -> IndexCollection:
        """Find keys whose index terms match.

        Args:
            bucket: Bucket to scan
            index_name: Secondary index name (e.g. "age_int")
            matcher: Literal term or inclusive IndexRange / (start, end)
            return_terms: Also map each matched term to its keys
            max_results: Page size (None for everything)
            continuation: Resume token from a previous page

        Returns:
            IndexCollection of matching keys for the requested page

        Raises:
            RequestError: If max_results or continuation is invalid
        """
        if isinstance(matcher, tuple):
            matcher = IndexRange(*matcher)
        if isinstance(matcher, IndexRange):
            matcher = matcher.normalized()
        if max_results is not None and max_results < 1:
            raise RequestError(
                f"max_results must be positive, got {max_results}",
                code="INVALID_MAX_RESULTS",
            )
        offset = _parse_continuation(continuation)

        matched_keys, hits = self._scan(bucket, index_name, matcher)

        page = matched_keys[offset:]
        next_continuation = None
        if max_results is not None and len(page) > max_results:
            page = page[:max_results]
            next_continuation = str(offset + max_results)

        with_terms = None
        if return_terms:
            on_page = set(page)
            with_terms = {}
            for term, key in hits:
                if key in on_page:
                    keys = with_terms.setdefault(term, [])
                    if key not in keys:
                        keys.append(key)

        logger.debug(
            "Index query",
            extra={
                "bucket_type": bucket.bucket_type,
                "bucket": bucket.name,
                "index": index_name,
                "matched": len(matched_keys),
                "returned": len(page),
                "offset": offset,
            },
        )
        return IndexCollection(page, with_terms=with_terms, continuation=next_continuation)

    def _scan(
        self, bucket: Bucket, index_name: str, matcher: Union[IndexTerm, IndexRange]
    ) -> Tuple[List[str], List[Tuple[Any, str]]]:
        """Collect matching keys in order plus every (term, key) hit."""
        matched_keys: List[str] = []
        seen = set()
        hits: List[Tuple[Any, str]] = []

        with self.store.lock:
            self.store.dataset.stats["vnode_index_reads_total"] += 1
            keys = self.store.list_keys(bucket)

        for key in keys:
            try:
                record = self.store.get_record(bucket, key)
            except NotFoundError:
                continue

            for term in _sorted_terms(record.indexes.get(index_name, ())):
                if isinstance(matcher, IndexRange):
                    value = _coerce(term, matcher.start)
                    found = value is not _NO_MATCH and value in matcher
                else:
                    value = _coerce(term, matcher)
                    found = value is not _NO_MATCH and value == matcher

                if found:
                    if key not in seen:
                        seen.add(key)
                        matched_keys.append(key)
                    hits.append((value, key))

        return matched_keys, hits
