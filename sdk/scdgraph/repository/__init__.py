"""
Plain CRUD repositories for nodes and relations.

Backends:
- Cypher (EntityRepository, RelationRepository) over any SessionProvider
- In-memory (InMemoryEntityRepository, InMemoryRelationRepository) for tests

All of them satisfy the EntityStore / RelationStore protocols consumed by
the SCD engine.
"""

from .base import Direction, Entity, EntityStore, RelationLabels, RelationStore
from .cypher import EntityRepository, RelationRepository
from .memory import InMemoryEntityRepository, InMemoryRelationRepository, MemoryEdge, MemoryGraph

__all__ = [
    # Protocols and types
    "EntityStore",
    "RelationStore",
    "Entity",
    "RelationLabels",
    "Direction",
    # Cypher
    "EntityRepository",
    "RelationRepository",
    # In-memory
    "MemoryGraph",
    "MemoryEdge",
    "InMemoryEntityRepository",
    "InMemoryRelationRepository",
]
