"""
Map/reduce phase pipeline.

MapReduceExecutor resolves a job's inputs, runs its phases strictly in
sequence and collects the results of kept phases. Phase functions are
never interpreted here: they are handed to a PhaseExecutor supplied by
the environment (an embedded script engine in production harnesses, a
plain Python fake in tests).

Invariants:
    - The whole query is validated before any phase runs
    - Each phase consumes exactly the previous phase's results
    - A map phase calls the phase function once per resolved input
    - A reduce phase calls the phase function exactly once
    - A non-kept final phase contributes an empty result list

How to change safely:
    - Keep the document shape stable; phase functions depend on it
    - New phase kinds need a validation rule and a runner
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

from pydantic import ValidationError

from ..config import MapReduceConfig
from ..errors import (
    NotFoundError,
    RequestError,
    UnsupportedLanguageError,
    UnsupportedOperationError,
)
from ..store import Bucket, MemoryStore, RecordCodec
from ..store.record import charset_of
from .models import MapReduceInput, MapReduceJob, Phase, PhaseKind

logger = logging.getLogger(__name__)


@runtime_checkable
class PhaseExecutor(Protocol):
    """Capability that runs phase functions.

    Contract:
        - run_map receives one document per input and returns a list
        - run_reduce receives the whole current value list and returns a list
        - Both receive the phase's static args unchanged
    """

    @abstractmethod
    def run_map(self, function: str, document: Dict[str, Any], args: List[Any]) -> List[Any]:
        """Run a map function over one input document."""
        ...

    @abstractmethod
    def run_reduce(self, function: str, values: List[Any], args: List[Any]) -> List[Any]:
        """Run a reduce function over all current values."""
        ...


def _payload(raw: Union[bytes, str]) -> Union[bytes, str]:
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw


class MapReduceExecutor:
    """Runs map/reduce jobs against a MemoryStore.

    Example:
        >>> executor = MapReduceExecutor(store, my_phase_executor)
        >>> executor.run(MapReduceJob().add("docs").map("identity", keep=True))
        ['hello', 'world']
    """

    def __init__(
        self,
        store: MemoryStore,
        phase_executor: Optional[PhaseExecutor] = None,
        config: Optional[MapReduceConfig] = None,
    ) -> None:
        self.store = store
        self.phase_executor = phase_executor
        self.config = config or MapReduceConfig()

    def run(self, job: Union[MapReduceJob, Mapping]) -> List[Any]:
        """Run a job.

        Args:
            job: MapReduceJob or its dict form

        Returns:
            The single kept result list, or the list of kept result lists

        Raises:
            UnsupportedOperationError: For link phases or no phase executor
            UnsupportedLanguageError: For phases not in the script language
            RequestError: For malformed jobs or inputs
        """
        if not isinstance(job, MapReduceJob):
            try:
                job = MapReduceJob.model_validate(job)
            except ValidationError as e:
                raise RequestError(f"Invalid map/reduce job: {e}", code="INVALID_JOB")

        self._validate(job.query)
        if job.query and self.phase_executor is None:
            raise UnsupportedOperationError(
                "mapred", "No phase executor configured for map/reduce"
            )

        with self.store.lock:
            self.store.dataset.stats["pipeline_create_count"] += 1

        current: List[Any] = self._resolve_inputs(job)
        tracked: List[List[Any]] = []
        last = len(job.query) - 1

        for position, phase in enumerate(job.query):
            if phase.kind is PhaseKind.MAP:
                results = self._run_map(phase, current, job.bucket_type)
            else:
                results = self._run_reduce(phase, current)

            if phase.keep:
                tracked.append(results)
            elif position == last:
                tracked.append([])

            logger.debug(
                "Map/reduce phase complete",
                extra={
                    "phase": position,
                    "kind": phase.kind.value,
                    "inputs": len(current),
                    "results": len(results),
                    "keep": phase.keep,
                },
            )
            current = results

        if len(tracked) == 1:
            return tracked[0]
        return tracked

    def _validate(self, query: List[Phase]) -> None:
        for phase in query:
            if phase.kind is PhaseKind.LINK:
                raise UnsupportedOperationError(
                    "link_phase", "Link phases are deprecated and will not be supported"
                )
            if phase.language.lower() != self.config.language.lower():
                raise UnsupportedLanguageError(phase.language, self.config.language)

    def _resolve_inputs(self, job: MapReduceJob) -> List[Any]:
        """Expand the job's inputs into the first phase's input list."""
        if isinstance(job.inputs, str):
            bucket = Bucket(job.inputs, job.bucket_type)
            return [
                MapReduceInput(bucket=bucket.name, key=key, bucket_type=job.bucket_type)
                for key in self.store.list_keys(bucket)
            ]
        return list(job.inputs)

    def _as_input(self, entry: Any, bucket_type: Optional[str]) -> MapReduceInput:
        """Interpret an input entry (or a previous phase's output) for a map."""
        if isinstance(entry, MapReduceInput):
            return entry
        try:
            if isinstance(entry, Mapping):
                return MapReduceInput.model_validate({"bucket_type": bucket_type, **entry})
            if isinstance(entry, (list, tuple)) and len(entry) in (2, 3):
                return MapReduceInput(
                    bucket=entry[0],
                    key=entry[1],
                    keydata=entry[2] if len(entry) == 3 else None,
                    bucket_type=bucket_type,
                )
        except ValidationError as e:
            raise RequestError(f"Invalid map/reduce input {entry!r}: {e}", code="INVALID_INPUT")
        raise RequestError(f"Invalid map/reduce input: {entry!r}", code="INVALID_INPUT")

    def _document(self, entry: MapReduceInput) -> Optional[Dict[str, Any]]:
        """Build the document a map function sees, None if the key is gone."""
        bucket = Bucket(entry.bucket, entry.bucket_type)

        if entry.data is not None:
            content_type = entry.content_type or "application/octet-stream"
            raw = entry.data.encode("utf-8") if isinstance(entry.data, str) else entry.data
            vclock = None
            metadata = {
                "etag": RecordCodec.compute_etag(raw),
                "content-type": content_type,
                "index": {},
                "last-modified": None,
                "charset": charset_of(content_type),
            }
            data = _payload(entry.data)
        else:
            try:
                record = self.store.get_record(bucket, entry.key)
            except NotFoundError:
                logger.debug(
                    "Skipping missing map input",
                    extra={"bucket": entry.bucket, "key": entry.key},
                )
                return None
            vclock = record.vclock
            metadata = record.to_metadata()
            data = _payload(record.raw_data)

        return {
            "bucket": bucket.name,
            "bucket_type": bucket.bucket_type,
            "key": entry.key,
            "vclock": vclock,
            "metadata": metadata,
            "data": data,
            "keydata": entry.keydata,
        }

    def _run_map(self, phase: Phase, current: List[Any], bucket_type: Optional[str]) -> List[Any]:
        results: List[Any] = []
        for entry in current:
            document = self._document(self._as_input(entry, bucket_type))
            if document is None:
                continue
            output = self.phase_executor.run_map(phase.function, document, list(phase.args))
            results.extend(output or [])
        return results

    def _run_reduce(self, phase: Phase, current: List[Any]) -> List[Any]:
        values = [
            entry.as_list() if isinstance(entry, MapReduceInput) else entry
            for entry in current
        ]
        return list(self.phase_executor.run_reduce(phase.function, values, list(phase.args)) or [])
