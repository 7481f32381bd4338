"""
Map/reduce for memkv - job models, phase executor contract and pipeline.
"""

from .executor import MapReduceExecutor, PhaseExecutor
from .models import MapReduceInput, MapReduceJob, Phase, PhaseKind

__all__ = [
    "MapReduceExecutor",
    "PhaseExecutor",
    "MapReduceInput",
    "MapReduceJob",
    "Phase",
    "PhaseKind",
]
