"""
Error types for memkv.

This module defines all exception types raised by the backend:
- MemKvError: Base exception
- NotFoundError: Bucket key, record, index or schema is absent
- RequestError: Generic request failure with a code and message
- UnsupportedDatatypeError: Bucket type has no usable CRDT datatype
- UnsupportedLanguageError: Map/reduce phase declares an unknown language
- UnsupportedOperationError: Capability deliberately not implemented
- ConfigError: Invalid environment configuration

Invariants:
    - All errors inherit from MemKvError
    - Unsupported capabilities fail immediately, never degrade silently
    - Errors include context for debugging
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union


class MemKvError(Exception):
    """Base exception for all memkv errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[Union[str, int]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = "MEMKV_ERROR" if code is None else code
        self.details = details or {}


class NotFoundError(MemKvError):
    """Resource not found.

    Raised when:
    - Key doesn't exist in the bucket
    - Record vanished between listing and fetching
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class RequestError(MemKvError):
    """Request failed.

    Mirrors a server error response: a numeric or symbolic code plus
    a message. Raised for missing search indexes and schemas, bad
    continuation tokens and unsupported CRDT datatypes.
    """

    def __init__(
        self,
        message: str,
        code: Union[str, int] = 0,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class UnsupportedDatatypeError(RequestError):
    """Bucket type has no recognized CRDT datatype."""

    def __init__(self, datatype: Optional[str], bucket_type: Optional[str]) -> None:
        super().__init__(
            f"Unsupported CRDT data type: {datatype}",
            code="UNSUPPORTED_DATATYPE",
            details={"datatype": datatype, "bucket_type": bucket_type},
        )
        self.datatype = datatype
        self.bucket_type = bucket_type


class UnsupportedLanguageError(RequestError):
    """Map/reduce phase function language is not supported."""

    def __init__(self, language: str, supported: str) -> None:
        super().__init__(
            f"Unsupported map/reduce language '{language}', only '{supported}' is available",
            code="UNSUPPORTED_LANGUAGE",
            details={"language": language, "supported": supported},
        )
        self.language = language


class UnsupportedOperationError(MemKvError, NotImplementedError):
    """Capability is deliberately not implemented by the memory backend.

    Raised for full-text search, link walking, link phases and legacy
    file storage. Also a NotImplementedError so callers can assert on
    either type.
    """

    def __init__(self, operation: str, reason: Optional[str] = None) -> None:
        message = reason or f"'{operation}' is not supported by the memory backend"
        super().__init__(
            message,
            code="UNSUPPORTED_OPERATION",
            details={"operation": operation},
        )
        self.operation = operation


class ConfigError(MemKvError, ValueError):
    """Configuration from the environment is invalid."""

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        super().__init__(message, code="CONFIG_ERROR", details={"setting": setting})
        self.setting = setting
