"""
Repository protocols shared by all backends.

- EntityStore: CRUD over nodes of one label, keyed by the id property
- RelationStore: CRUD over directed relations of one type between two labels

Both the Cypher repositories and the in-memory repositories implement these
protocols, and the SCD engine only depends on them.

Invariants:
    - Reads return stored properties only
    - "Not found" on a read path is None (or an empty list), never an error
    - delete_by_id on an unknown id is a no-op
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from ..query.builder import identifier
from ..types import RelationshipVersion

Entity = Dict[str, Any]


class Direction(Enum):
    """Side of a relation the source node sits on."""

    OUTGOING = "outgoing"  # (source)-[r]->(related)
    INCOMING = "incoming"  # (source)<-[r]-(related)


@dataclass(frozen=True)
class RelationLabels:
    """Labels fixing one relation repository.

    Attributes:
        start: Label of start nodes
        relation: Relation type
        end: Label of end nodes
    """

    start: str
    relation: str
    end: str

    def __post_init__(self) -> None:
        identifier(self.start)
        identifier(self.relation)
        identifier(self.end)


@runtime_checkable
class EntityStore(Protocol):
    """Node CRUD keyed by id."""

    label: str

    @abstractmethod
    async def create(self, entity: Mapping[str, Any]) -> Entity:
        ...

    @abstractmethod
    async def find_by_id(self, id: Any) -> Optional[Entity]:
        ...

    @abstractmethod
    async def find_by(self, attribute: str, value: Any) -> List[Entity]:
        ...

    @abstractmethod
    async def find_all(self) -> List[Entity]:
        ...

    @abstractmethod
    async def update_by_id(self, id: Any, patch: Mapping[str, Any]) -> Optional[Entity]:
        ...

    @abstractmethod
    async def delete_by_id(self, id: Any, *, detach: bool = False) -> None:
        ...

    @abstractmethod
    async def copy_relationships(self, source_id: Any, target_id: Any, direction: Direction) -> int:
        """Duplicate every relation touching source onto target.

        Copies keep the relation type, the full property set and the far
        endpoint. Relations of the source record are left untouched, and
        relations whose far endpoint is already target are not copied.

        Returns:
            Number of relations created
        """
        ...


@runtime_checkable
class RelationStore(Protocol):
    """Relation CRUD keyed by the relation's id property."""

    labels: RelationLabels

    @abstractmethod
    async def create(
        self,
        start_node_id: Any,
        end_node_id: Any,
        properties: Mapping[str, Any],
    ) -> RelationshipVersion:
        ...

    @abstractmethod
    async def find_by_id(self, id: Any) -> Optional[RelationshipVersion]:
        ...

    @abstractmethod
    async def find_by(self, attribute: str, value: Any) -> List[RelationshipVersion]:
        ...

    @abstractmethod
    async def find_all(self) -> List[RelationshipVersion]:
        ...

    @abstractmethod
    async def update_by_id(self, id: Any, patch: Mapping[str, Any]) -> Optional[RelationshipVersion]:
        ...

    @abstractmethod
    async def delete_by_id(self, id: Any) -> Optional[RelationshipVersion]:
        ...
