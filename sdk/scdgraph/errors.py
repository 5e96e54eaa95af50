"""
Error types for scdgraph.

This module defines all exception types raised by the package:
- ScdGraphError: Base exception
- ConnectionError: Graph database unreachable
- QueryError: Malformed statement or unsafe identifier
- ValidationError: Version data is missing required SCD fields
- NotFoundError: Anchor record or version chain does not exist
- AlreadyInStateError: Status transition would be a no-op
- InvalidRangeError: Time window bounds are reversed
- BackingStoreError: Failure reported by the in-memory store

Errors raised by the neo4j driver itself are never wrapped; they reach the
caller unchanged.

Invariants:
    - All errors inherit from ScdGraphError
    - Every error carries a stable code for programmatic handling
    - A read that finds nothing returns None instead of raising
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ScdGraphError(Exception):
    """Base exception for all scdgraph errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SCDGRAPH_ERROR"
        self.details = details or {}


class ConnectionError(ScdGraphError):
    """Failed to reach the graph database.

    Raised when connectivity verification fails after all retries.
    """

    def __init__(
        self,
        message: str,
        uri: Optional[str] = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details={"uri": uri, "attempts": attempts},
        )
        self.uri = uri
        self.attempts = attempts


class QueryError(ScdGraphError):
    """A statement could not be built.

    Raised when:
    - An unknown clause keyword reaches the builder
    - A label, relation type or attribute name is not a plain identifier
    """

    def __init__(self, message: str, fragment: Optional[str] = None) -> None:
        super().__init__(message, code="QUERY_ERROR", details={"fragment": fragment})
        self.fragment = fragment


class ValidationError(ScdGraphError):
    """Version data failed validation.

    Raised when:
    - A required SCD field is missing after merging
    - scd_status is not one of the known statuses
    - scd_create_date cannot be interpreted as a point in time
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class NotFoundError(ScdGraphError):
    """Referenced record or chain does not exist.

    Raised when:
    - create_version is anchored on an unknown id
    - A status change targets an empty chain
    - A relation endpoint node is missing
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: Any,
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


class AlreadyInStateError(ScdGraphError):
    """The latest version already has the requested status."""

    def __init__(self, scd_id: Any, status: str) -> None:
        super().__init__(
            f"Chain with scd_id {scd_id} is already {status}",
            code="ALREADY_IN_STATE",
            details={"scd_id": scd_id, "status": status},
        )
        self.scd_id = scd_id
        self.status = status


class InvalidRangeError(ScdGraphError):
    """The lower bound of a time window is after the upper bound."""

    def __init__(self, start: Any, end: Any) -> None:
        super().__init__(
            "the first timestamp must be older than the second timestamp.",
            code="INVALID_RANGE",
            details={"start": start, "end": end},
        )
        self.start = start
        self.end = end


class BackingStoreError(ScdGraphError):
    """The in-memory store rejected an operation.

    Mirrors the constraint failures a real graph database reports, such as
    deleting a node that still has relationships.
    """

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="BACKING_STORE_ERROR",
            details={"operation": operation},
        )
        self.operation = operation
