"""
In-memory graph and repositories for testing.

This module provides a dependency-free backend implementing the same
EntityStore / RelationStore contracts as the Cypher repositories, for:
- Unit tests of the SCD engine
- Local development without a running Neo4j

The semantics follow what Neo4j does for the equivalent statements:
- Properties set to None are not stored (SET n += {k: null} removes k)
- Equality filters never match a missing property
- Deleting a node that still has relations fails unless detach=True
- update/delete by id touch every matching relation and return the first

Invariants:
    - All data is lost on process exit
    - Stored properties are deep-copied on the way in and out
    - Mutations are serialized with one asyncio.Lock per graph

How to change safely:
    - This is test-only code, but tests trust it to behave like Neo4j
    - Keep interface compatible with the protocols in base.py
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import BackingStoreError, NotFoundError
from ..query.builder import identifier
from ..types import RelationshipVersion
from .base import Direction, Entity, RelationLabels

logger = logging.getLogger(__name__)

NodeKey = Tuple[str, Any]  # (label, id)


def _stored(properties: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: copy.deepcopy(value) for key, value in properties.items() if value is not None}


def _matches(properties: Mapping[str, Any], attribute: str, value: Any) -> bool:
    return value is not None and attribute in properties and properties[attribute] == value


@dataclass
class MemoryEdge:
    """A stored relation."""

    seq: int
    type: str
    start: NodeKey
    end: NodeKey
    properties: Dict[str, Any] = field(default_factory=dict)


class MemoryGraph:
    """Shared storage for in-memory repositories.

    Nodes are unique per (label, id). Relations are kept in insertion order.

    Example:
        >>> graph = MemoryGraph()
        >>> people = InMemoryEntityRepository(graph, "Person")
        >>> knows = InMemoryRelationRepository(graph, RelationLabels("Person", "KNOWS", "Person"))
    """

    def __init__(self) -> None:
        self.nodes: Dict[NodeKey, Dict[str, Any]] = {}
        self.edges: List[MemoryEdge] = []
        self.lock = asyncio.Lock()
        self._seq = itertools.count()

    def add_edge(self, rel_type: str, start: NodeKey, end: NodeKey, properties: Mapping[str, Any]) -> MemoryEdge:
        edge = MemoryEdge(next(self._seq), rel_type, start, end, _stored(properties))
        self.edges.append(edge)
        return edge

    def remove_edges(self, edges: List[MemoryEdge]) -> None:
        doomed = {e.seq for e in edges}
        self.edges = [e for e in self.edges if e.seq not in doomed]

    def edges_touching(self, key: NodeKey) -> List[MemoryEdge]:
        return [e for e in self.edges if e.start == key or e.end == key]

    def clear(self) -> None:
        self.nodes.clear()
        self.edges.clear()

    def stats(self) -> Dict[str, int]:
        """Counts for assertions in tests."""
        return {"nodes": len(self.nodes), "edges": len(self.edges)}


class InMemoryEntityRepository:
    """EntityStore over a MemoryGraph."""

    def __init__(self, graph: MemoryGraph, label: str) -> None:
        self.label = identifier(label)
        self._graph = graph

    def _key(self, id: Any) -> NodeKey:
        return (self.label, id)

    def _own_nodes(self) -> List[Dict[str, Any]]:
        return [props for (label, _), props in self._graph.nodes.items() if label == self.label]

    async def create(self, entity: Mapping[str, Any]) -> Entity:
        if entity.get("id") is None:
            raise BackingStoreError(f"{self.label} node requires an id", operation="create")
        key = self._key(entity["id"])
        async with self._graph.lock:
            if key in self._graph.nodes:
                raise BackingStoreError(
                    f"{self.label} node with id {entity['id']} already exists",
                    operation="create",
                )
            self._graph.nodes[key] = _stored(entity)
            return copy.deepcopy(self._graph.nodes[key])

    async def find_by(self, attribute: str, value: Any) -> List[Entity]:
        identifier(attribute)
        return [copy.deepcopy(p) for p in self._own_nodes() if _matches(p, attribute, value)]

    async def find_by_id(self, id: Any) -> Optional[Entity]:
        props = self._graph.nodes.get(self._key(id))
        return copy.deepcopy(props) if props is not None else None

    async def find_all(self) -> List[Entity]:
        return [copy.deepcopy(p) for p in self._own_nodes()]

    async def update_by_id(self, id: Any, patch: Mapping[str, Any]) -> Optional[Entity]:
        async with self._graph.lock:
            props = self._graph.nodes.get(self._key(id))
            if props is None:
                return None
            for name, value in patch.items():
                if value is None:
                    props.pop(name, None)
                else:
                    props[name] = copy.deepcopy(value)
            return copy.deepcopy(props)

    async def delete_by_id(self, id: Any, *, detach: bool = False) -> None:
        key = self._key(id)
        async with self._graph.lock:
            if key not in self._graph.nodes:
                return
            attached = self._graph.edges_touching(key)
            if attached and not detach:
                raise BackingStoreError(
                    f"Cannot delete {self.label} node {id}: it still has {len(attached)} relationships",
                    operation="delete",
                )
            self._graph.remove_edges(attached)
            del self._graph.nodes[key]

    async def copy_relationships(self, source_id: Any, target_id: Any, direction: Direction) -> int:
        source, target = self._key(source_id), self._key(target_id)
        async with self._graph.lock:
            if source not in self._graph.nodes or target not in self._graph.nodes:
                return 0
            # Edges already re-pointed at target by the other direction are skipped
            if direction is Direction.OUTGOING:
                matched = [e for e in self._graph.edges if e.start == source and e.end != target]
                for edge in matched:
                    self._graph.add_edge(edge.type, target, edge.end, edge.properties)
            else:
                matched = [e for e in self._graph.edges if e.end == source and e.start != target]
                for edge in matched:
                    self._graph.add_edge(edge.type, edge.start, target, edge.properties)
        logger.debug(
            "Copied relationships",
            extra={
                "label": self.label,
                "source_id": source_id,
                "target_id": target_id,
                "direction": direction.value,
                "copied": len(matched),
            },
        )
        return len(matched)


class InMemoryRelationRepository:
    """RelationStore over a MemoryGraph."""

    def __init__(self, graph: MemoryGraph, labels: RelationLabels) -> None:
        self.labels = labels
        self._graph = graph

    def _own_edges(self) -> List[MemoryEdge]:
        return [
            e
            for e in self._graph.edges
            if e.type == self.labels.relation
            and e.start[0] == self.labels.start
            and e.end[0] == self.labels.end
        ]

    @staticmethod
    def _version(edge: MemoryEdge) -> RelationshipVersion:
        return RelationshipVersion(
            type=edge.type,
            properties=copy.deepcopy(edge.properties),
            start_node_id=edge.start[1],
            end_node_id=edge.end[1],
        )

    async def create(
        self,
        start_node_id: Any,
        end_node_id: Any,
        properties: Mapping[str, Any],
    ) -> RelationshipVersion:
        start = (self.labels.start, start_node_id)
        end = (self.labels.end, end_node_id)
        async with self._graph.lock:
            if start not in self._graph.nodes or end not in self._graph.nodes:
                raise NotFoundError(
                    f"Cannot create {self.labels.relation}: node {start_node_id} or {end_node_id} does not exist",
                    resource_type="node",
                    resource_id=[start_node_id, end_node_id],
                )
            edge = self._graph.add_edge(self.labels.relation, start, end, properties)
            return self._version(edge)

    async def find_by(self, attribute: str, value: Any) -> List[RelationshipVersion]:
        identifier(attribute)
        return [self._version(e) for e in self._own_edges() if _matches(e.properties, attribute, value)]

    async def find_by_id(self, id: Any) -> Optional[RelationshipVersion]:
        found = await self.find_by("id", id)
        return found[0] if found else None

    async def find_all(self) -> List[RelationshipVersion]:
        return [self._version(e) for e in self._own_edges()]

    async def update_by_id(self, id: Any, patch: Mapping[str, Any]) -> Optional[RelationshipVersion]:
        async with self._graph.lock:
            matched = [e for e in self._own_edges() if _matches(e.properties, "id", id)]
            for edge in matched:
                for name, value in patch.items():
                    if value is None:
                        edge.properties.pop(name, None)
                    else:
                        edge.properties[name] = copy.deepcopy(value)
            return self._version(matched[0]) if matched else None

    async def delete_by_id(self, id: Any) -> Optional[RelationshipVersion]:
        async with self._graph.lock:
            matched = [e for e in self._own_edges() if _matches(e.properties, "id", id)]
            if not matched:
                return None
            self._graph.remove_edges(matched)
            return self._version(matched[0])
