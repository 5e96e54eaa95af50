"""
Cypher-backed repositories.

EntityRepository and RelationRepository translate each CRUD call into one
statement built with QueryBuilder and run it on a fresh session from a
SessionProvider (normally a connected Neo4jClient).

Writes run inside an explicit transaction; reads use auto-commit sessions.

Invariants:
    - One session per call; concurrent calls never share a session
    - Labels, relation types and attribute names are validated identifiers
    - Driver errors propagate unchanged

How to change safely:
    - Keep the RETURN column names stable, the row mappers depend on them
    - copy_relationships relies on APOC for dynamic relation types
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from ..errors import NotFoundError
from ..query.builder import QueryBuilder, identifier
from ..query.protocol import NodeProjection, RelationProjection, Row, SessionProvider
from ..types import RelationshipVersion
from .base import Direction, Entity, RelationLabels

logger = logging.getLogger(__name__)


def _node_properties(row: Row, key: str = "n") -> Entity:
    value = row[key]
    if isinstance(value, NodeProjection):
        return dict(value.properties)
    return dict(value)


def _relation_from_row(row: Row) -> RelationshipVersion:
    value = row["r"]
    if isinstance(value, RelationProjection):
        rel_type, properties = value.type, value.properties
    else:
        rel_type, properties = row["relType"], value
    return RelationshipVersion(
        type=rel_type,
        properties=dict(properties),
        start_node_id=row.get("startNodeId"),
        end_node_id=row.get("endNodeId"),
    )


class EntityRepository:
    """Node CRUD for a single label.

    Example:
        >>> people = EntityRepository(client, "Person")
        >>> await people.create({"id": "p1", "name": "joel"})
        >>> await people.find_by("name", "joel")
    """

    def __init__(self, provider: SessionProvider, label: str) -> None:
        self.label = identifier(label)
        self._provider = provider

    async def _run(self, query: QueryBuilder, use_transaction: bool = False) -> List[Row]:
        async with self._provider.session() as session:
            return await query.execute(session, use_transaction)

    async def create(self, entity: Mapping[str, Any]) -> Entity:
        query = QueryBuilder().create(f"(n:{self.label} $node)", {"node": dict(entity)}).return_("n")
        rows = await self._run(query, use_transaction=True)
        return _node_properties(rows[0])

    async def find_by(self, attribute: str, value: Any) -> List[Entity]:
        query = (
            QueryBuilder()
            .match(f"(n:{self.label})")
            .where(f"n.{identifier(attribute)} = $value", {"value": value})
            .return_("n")
        )
        return [_node_properties(row) for row in await self._run(query)]

    async def find_by_id(self, id: Any) -> Optional[Entity]:
        query = QueryBuilder().match(f"(n:{self.label} {{id:$id}})", {"id": id}).return_("n")
        rows = await self._run(query)
        if not rows:
            return None
        return _node_properties(rows[0])

    async def find_all(self) -> List[Entity]:
        query = QueryBuilder().match(f"(n:{self.label})").return_("n")
        return [_node_properties(row) for row in await self._run(query)]

    async def update_by_id(self, id: Any, patch: Mapping[str, Any]) -> Optional[Entity]:
        query = (
            QueryBuilder()
            .match(f"(n:{self.label} {{id:$id}})", {"id": id})
            .set("n += $node", {"node": dict(patch)})
            .return_("n")
        )
        rows = await self._run(query, use_transaction=True)
        if not rows:
            return None
        return _node_properties(rows[0])

    async def delete_by_id(self, id: Any, *, detach: bool = False) -> None:
        query = QueryBuilder().match(f"(n:{self.label} {{id:$id}})", {"id": id})
        query = query.detach_delete("n") if detach else query.delete("n")
        await self._run(query, use_transaction=True)

    async def copy_relationships(self, source_id: Any, target_id: Any, direction: Direction) -> int:
        if direction is Direction.OUTGOING:
            pattern = f"(source:{self.label} {{id:$sourceId}})-[r]->(related)"
            create = "apoc.create.relationship(target, relType, relProps, related)"
        else:
            pattern = f"(source:{self.label} {{id:$sourceId}})<-[r]-(related)"
            create = "apoc.create.relationship(related, relType, relProps, target)"
        query = (
            QueryBuilder()
            .match(pattern, {"sourceId": source_id})
            .match(f"(target:{self.label} {{id:$targetId}})", {"targetId": target_id})
            .where("related <> target")
            .with_("target, related, type(r) AS relType, properties(r) AS relProps")
            .call(create)
            .yield_("rel")
            .return_("count(rel) AS copied")
        )
        rows = await self._run(query, use_transaction=True)
        copied = int(rows[0]["copied"]) if rows else 0
        logger.debug(
            "Copied relationships",
            extra={
                "label": self.label,
                "source_id": source_id,
                "target_id": target_id,
                "direction": direction.value,
                "copied": copied,
            },
        )
        return copied


class RelationRepository:
    """Relation CRUD for one (start label, type, end label) triple.

    Example:
        >>> knows = RelationRepository(client, RelationLabels("Person", "KNOWS", "Person"))
        >>> await knows.create("p1", "p2", {"id": "k1", "since": 2020})
    """

    def __init__(self, provider: SessionProvider, labels: RelationLabels) -> None:
        self.labels = labels
        self._provider = provider

    @property
    def _pattern(self) -> str:
        return (
            f"(startNode:{self.labels.start})"
            f"-[r:{self.labels.relation}]->"
            f"(endNode:{self.labels.end})"
        )

    async def _run(self, query: QueryBuilder, use_transaction: bool = False) -> List[Row]:
        async with self._provider.session() as session:
            return await query.execute(session, use_transaction)

    def _returning(self, query: QueryBuilder) -> QueryBuilder:
        return query.return_("r", "startNode.id AS startNodeId", "endNode.id AS endNodeId")

    async def create(
        self,
        start_node_id: Any,
        end_node_id: Any,
        properties: Mapping[str, Any],
    ) -> RelationshipVersion:
        """Create one relation between two existing nodes.

        Raises:
            NotFoundError: If either endpoint node does not exist
        """
        query = (
            QueryBuilder()
            .match(f"(startNode:{self.labels.start} {{id:$startNodeId}})", {"startNodeId": start_node_id})
            .match(f"(endNode:{self.labels.end} {{id:$endNodeId}})", {"endNodeId": end_node_id})
            .create(
                f"(startNode)-[r:{self.labels.relation} $relationProperties]->(endNode)",
                {"relationProperties": dict(properties)},
            )
            .return_("r")
        )
        rows = await self._run(query, use_transaction=True)
        if not rows:
            raise NotFoundError(
                f"Cannot create {self.labels.relation}: node {start_node_id} or {end_node_id} does not exist",
                resource_type="node",
                resource_id=[start_node_id, end_node_id],
            )
        relation = rows[0]["r"]
        return RelationshipVersion(
            type=relation.type,
            properties=dict(relation.properties),
            start_node_id=start_node_id,
            end_node_id=end_node_id,
        )

    async def find_by(self, attribute: str, value: Any) -> List[RelationshipVersion]:
        query = self._returning(
            QueryBuilder()
            .match(self._pattern)
            .where(f"r.{identifier(attribute)} = $value", {"value": value})
        )
        return [_relation_from_row(row) for row in await self._run(query)]

    async def find_by_id(self, id: Any) -> Optional[RelationshipVersion]:
        query = self._returning(QueryBuilder().match(self._pattern).where("r.id = $id", {"id": id}))
        rows = await self._run(query)
        if not rows:
            return None
        return _relation_from_row(rows[0])

    async def find_all(self) -> List[RelationshipVersion]:
        query = self._returning(QueryBuilder().match(self._pattern))
        return [_relation_from_row(row) for row in await self._run(query)]

    async def update_by_id(self, id: Any, patch: Mapping[str, Any]) -> Optional[RelationshipVersion]:
        query = self._returning(
            QueryBuilder()
            .match(self._pattern)
            .where("r.id = $id", {"id": id})
            .set("r += $relationProperties", {"relationProperties": dict(patch)})
        )
        rows = await self._run(query, use_transaction=True)
        if not rows:
            return None
        return _relation_from_row(rows[0])

    async def delete_by_id(self, id: Any) -> Optional[RelationshipVersion]:
        # Properties are captured before DELETE so the row outlives the relation
        query = (
            QueryBuilder()
            .match(self._pattern)
            .where("r.id = $id", {"id": id})
            .with_(
                "r, type(r) AS relType, properties(r) AS relProps, "
                "startNode.id AS startNodeId, endNode.id AS endNodeId"
            )
            .delete("r")
            .return_("relType", "relProps AS r", "startNodeId", "endNodeId")
        )
        rows = await self._run(query, use_transaction=True)
        if not rows:
            return None
        return _relation_from_row(rows[0])
