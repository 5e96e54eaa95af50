"""
scdgraph - Versioned object-graph mapping for Neo4j.

This package layers slowly-changing-dimension (type 2) history over a graph
database:
- QueryBuilder for parameterized Cypher statements
- Neo4jClient as the driver-backed session provider
- EntityRepository / RelationRepository for plain CRUD
- ScdEntityRepository / ScdRelationRepository for version chains

Example:
    >>> from sdk.scdgraph import EntityRepository, Neo4jClient, ScdEntityRepository
    >>>
    >>> async with Neo4jClient() as client:
    ...     people = ScdEntityRepository(EntityRepository(client, "Person"))
    ...     v1 = await people.create({
    ...         "name": "joel",
    ...         "scd_status": "active",
    ...         "scd_create_date": 100,
    ...         "scd_insert_by": "etl",
    ...     })
    ...     await people.deactivate(v1, {"scd_create_date": 200, "scd_insert_by": "etl"})
    ...     current = await people.get_latest_active_version(v1["scd_id"])

Invariants:
    - Versions are append-only; history is never rewritten
    - All versions of one logical entity share a scd_id
    - The current version is always derived, never stored

Version: 0.1.0
"""

__version__ = "0.1.0"

from .config import LoggingSettings, Neo4jSettings, Settings
from .errors import (
    AlreadyInStateError,
    BackingStoreError,
    ConnectionError,
    InvalidRangeError,
    NotFoundError,
    QueryError,
    ScdGraphError,
    ValidationError,
)
from .logging_setup import setup_logging
from .query import (
    GraphSession,
    GraphTransaction,
    Neo4jClient,
    NodeProjection,
    QueryBuilder,
    RelationProjection,
    SessionProvider,
    Statement,
)
from .repository import (
    Direction,
    EntityRepository,
    EntityStore,
    InMemoryEntityRepository,
    InMemoryRelationRepository,
    MemoryGraph,
    RelationLabels,
    RelationRepository,
    RelationStore,
)
from .scd import ScdEngine, ScdEntityRepository, ScdRelationRepository
from .types import RelationshipVersion, ScdStatus, to_epoch_millis

__all__ = [
    # Version
    "__version__",
    # Config
    "Settings",
    "Neo4jSettings",
    "LoggingSettings",
    "setup_logging",
    # Errors
    "ScdGraphError",
    "ConnectionError",
    "QueryError",
    "ValidationError",
    "NotFoundError",
    "AlreadyInStateError",
    "InvalidRangeError",
    "BackingStoreError",
    # Query
    "QueryBuilder",
    "Statement",
    "GraphSession",
    "GraphTransaction",
    "SessionProvider",
    "NodeProjection",
    "RelationProjection",
    "Neo4jClient",
    # Repositories
    "Direction",
    "EntityStore",
    "RelationStore",
    "RelationLabels",
    "EntityRepository",
    "RelationRepository",
    "MemoryGraph",
    "InMemoryEntityRepository",
    "InMemoryRelationRepository",
    # Versioning
    "ScdEngine",
    "ScdEntityRepository",
    "ScdRelationRepository",
    "RelationshipVersion",
    "ScdStatus",
    "to_epoch_millis",
]
