"""
memkv Test Suite.

This package contains:
- unit/: Unit tests for the store, index, CRDT and map/reduce components
- integration/: Tests driving MemoryBackend the way a client library does
"""
