"""
Secondary index queries for memkv.
"""

from .engine import IndexCollection, IndexEngine, IndexRange

__all__ = ["IndexCollection", "IndexEngine", "IndexRange"]
