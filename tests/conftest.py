"""
Shared fixtures for memkv tests.
"""

from typing import Any, Callable, Dict, List

import pytest

from memkv import BackendConfig, Bucket, MemoryBackend, reset_datasets
from memkv.store import DatasetRegistry, MemoryStore


class PythonPhaseExecutor:
    """Phase executor that runs Python callables registered by name.

    Map callables take (document, args), reduce callables take
    (values, args); both return a list.
    """

    def __init__(self) -> None:
        self.functions: Dict[str, Callable[..., List[Any]]] = {}
        self.calls: List[tuple] = []

    def register(self, name: str, function: Callable[..., List[Any]]) -> None:
        self.functions[name] = function

    def run_map(self, function: str, document: Dict[str, Any], args: List[Any]) -> List[Any]:
        self.calls.append(("map", function, document["key"]))
        return self.functions[function](document, args)

    def run_reduce(self, function: str, values: List[Any], args: List[Any]) -> List[Any]:
        self.calls.append(("reduce", function, len(values)))
        return self.functions[function](values, args)


@pytest.fixture(autouse=True)
def clean_datasets():
    """Give every test an empty process-wide dataset registry."""
    reset_datasets()
    yield
    reset_datasets()


@pytest.fixture
def phase_executor():
    """Phase executor with identity and collection helpers registered."""
    executor = PythonPhaseExecutor()
    executor.register("identity", lambda doc, args: [doc["data"]])
    executor.register("keys", lambda doc, args: [[doc["bucket"], doc["key"]]])
    executor.register("count", lambda values, args: [len(values)])
    executor.register("sum", lambda values, args: [sum(values)])
    executor.register("sorted", lambda values, args: sorted(values))
    return executor


@pytest.fixture
def backend(phase_executor):
    """Backend bound to the local node."""
    return MemoryBackend(["127.0.0.1"], config=BackendConfig(), phase_executor=phase_executor)


@pytest.fixture
def bucket():
    """The default-typed test bucket."""
    return Bucket("fakeriak")


@pytest.fixture
def store():
    """Store over a private dataset."""
    dataset = DatasetRegistry().attach(["10.0.0.1"])
    return MemoryStore(dataset)
