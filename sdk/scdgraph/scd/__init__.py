"""
SCD type-2 versioning over the plain repositories.
"""

from .engine import (
    EntityVersionAdapter,
    RelationVersionAdapter,
    ScdEngine,
    ScdEntityRepository,
    ScdRelationRepository,
    VersionAdapter,
    new_id,
)

__all__ = [
    "ScdEngine",
    "VersionAdapter",
    "EntityVersionAdapter",
    "RelationVersionAdapter",
    "ScdEntityRepository",
    "ScdRelationRepository",
    "new_id",
]
