"""
Core data types for versioned nodes and relations.

A versioned record is a plain property mapping carrying the SCD fields:
    - id: unique per physical record
    - scd_id: shared by every version of one logical entity
    - scd_create_date: creation instant (epoch ms, ISO string or datetime)
    - scd_status: "active" or "inactive"
    - scd_insert_by: provenance marker, opaque to the engine

Invariants:
    - Records are never mutated by the engine; merges build new mappings
    - Ordering always goes through to_epoch_millis, never raw comparison
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from .errors import ValidationError

SCD_FIELDS: tuple[str, ...] = (
    "scd_id",
    "scd_create_date",
    "scd_status",
    "scd_insert_by",
)
REQUIRED_FIELDS: tuple[str, ...] = ("id",) + SCD_FIELDS


class ScdStatus(str, Enum):
    """Status carried by every version."""

    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def from_value(cls, value: Any) -> ScdStatus:
        """Convert a stored value to ScdStatus."""
        if isinstance(value, cls):
            return value
        for status in cls:
            if status.value == value:
                return status
        raise ValidationError(
            f"scd_status must be one of {[s.value for s in cls]}, got {value!r}",
            field_name="scd_status",
        )


@dataclass
class RelationshipVersion:
    """A relation record bound to two node records.

    Attributes:
        type: Relation type name
        properties: Stored relation properties (including SCD fields)
        start_node_id: id property of the start node
        end_node_id: id property of the end node
    """

    type: str
    properties: dict[str, Any] = field(default_factory=dict)
    start_node_id: Any = None
    end_node_id: Any = None

    @property
    def id(self) -> Any:
        return self.properties.get("id")

    @property
    def scd_id(self) -> Any:
        return self.properties.get("scd_id")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type,
            "properties": dict(self.properties),
            "start_node_id": self.start_node_id,
            "end_node_id": self.end_node_id,
        }


def to_epoch_millis(value: Any) -> float:
    """Normalize a scd_create_date value to epoch milliseconds.

    Accepts numbers (already epoch ms), ISO-8601 strings, datetimes and
    driver temporal values exposing ``to_native()``. Naive datetimes are
    interpreted as UTC.

    Raises:
        ValidationError: If the value is not a recognizable instant
    """
    if hasattr(value, "to_native"):
        value = value.to_native()
    if isinstance(value, bool):
        raise ValidationError(
            f"scd_create_date must be a timestamp, got {value!r}",
            field_name="scd_create_date",
        )
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return float(text)
        except ValueError:
            pass
        try:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(
                f"scd_create_date is not an ISO-8601 timestamp: {value!r}",
                field_name="scd_create_date",
            )
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp() * 1000.0
    raise ValidationError(
        f"Unsupported scd_create_date value: {value!r}",
        field_name="scd_create_date",
    )


def merge_version_data(
    base: Mapping[str, Any],
    patch: Mapping[str, Any],
) -> dict[str, Any]:
    """Overlay patch on base and check the result is a complete version.

    Args:
        base: Existing properties (left side of the merge)
        patch: Values taking precedence

    Returns:
        New mapping; neither input is modified

    Raises:
        ValidationError: If a required field is missing or scd_status is unknown
    """
    merged = {**base, **patch}
    missing = [name for name in REQUIRED_FIELDS if merged.get(name) is None]
    if missing:
        raise ValidationError(
            f"Version data is missing required fields: {', '.join(missing)}",
            field_name=missing[0],
            errors=[f"Field '{name}' is required" for name in missing],
        )
    merged["scd_status"] = ScdStatus.from_value(merged["scd_status"]).value
    return merged
