"""
Unit tests for the Cypher repositories.

The session provider is faked; tests assert the statements sent and the
mapping of returned rows.

Tests cover:
- Statement text and parameters per operation
- Transaction use for writes
- Row to record mapping
- One session per call
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from sdk.scdgraph.errors import NotFoundError, QueryError
from sdk.scdgraph.query.protocol import NodeProjection, RelationProjection
from sdk.scdgraph.repository import (
    Direction,
    EntityRepository,
    EntityStore,
    RelationLabels,
    RelationRepository,
    RelationStore,
)
from sdk.scdgraph.types import RelationshipVersion


class FakeProvider:
    """SessionProvider handing out one mocked session."""

    def __init__(self):
        self.tx = AsyncMock()
        self.tx.run.return_value = []
        self.session_mock = AsyncMock()
        self.session_mock.run.return_value = []
        self.session_mock.begin_transaction.return_value = self.tx
        self.opened = 0

    @asynccontextmanager
    async def session(self):
        self.opened += 1
        yield self.session_mock


def node(**properties):
    return NodeProjection("4:db:1", frozenset({"Person"}), properties)


def relation(rel_type="KNOWS", **properties):
    return RelationProjection("5:db:1", rel_type, properties, "4:db:1", "4:db:2")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def people(provider):
    return EntityRepository(provider, "Person")


@pytest.fixture
def knows(provider):
    return RelationRepository(provider, RelationLabels("Person", "KNOWS", "Person"))


class TestEntityRepository:
    """Tests for EntityRepository."""

    def test_conforms(self, people):
        assert isinstance(people, EntityStore)

    def test_rejects_unsafe_label(self, provider):
        with pytest.raises(QueryError):
            EntityRepository(provider, "Person) DETACH DELETE (x")

    @pytest.mark.asyncio
    async def test_create(self, provider, people):
        provider.tx.run.return_value = [{"n": node(id="p1", name="joel")}]

        created = await people.create({"id": "p1", "name": "joel"})

        assert created == {"id": "p1", "name": "joel"}
        provider.tx.run.assert_awaited_once_with(
            "CREATE (n:Person $node) RETURN n",
            {"node": {"id": "p1", "name": "joel"}},
        )
        provider.tx.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_find_by(self, provider, people):
        provider.session_mock.run.return_value = [{"n": node(id="p1")}, {"n": node(id="p2")}]

        found = await people.find_by("name", "joel")

        assert found == [{"id": "p1"}, {"id": "p2"}]
        provider.session_mock.run.assert_awaited_once_with(
            "MATCH (n:Person) WHERE n.name = $value RETURN n",
            {"value": "joel"},
        )
        provider.session_mock.begin_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_find_by_rejects_unsafe_attribute(self, people):
        with pytest.raises(QueryError):
            await people.find_by("name = 'x' OR true //", "x")

    @pytest.mark.asyncio
    async def test_find_by_id(self, provider, people):
        provider.session_mock.run.return_value = [{"n": node(id="p1")}]

        assert await people.find_by_id("p1") == {"id": "p1"}
        provider.session_mock.run.assert_awaited_once_with("MATCH (n:Person {id:$id}) RETURN n", {"id": "p1"})

    @pytest.mark.asyncio
    async def test_find_by_id_missing(self, people):
        assert await people.find_by_id("nope") is None

    @pytest.mark.asyncio
    async def test_find_all(self, provider, people):
        provider.session_mock.run.return_value = [{"n": node(id="p1")}]

        assert await people.find_all() == [{"id": "p1"}]
        provider.session_mock.run.assert_awaited_once_with("MATCH (n:Person) RETURN n", {})

    @pytest.mark.asyncio
    async def test_plain_mapping_rows(self, provider, people):
        """Rows holding plain property maps are accepted too."""
        provider.session_mock.run.return_value = [{"n": {"id": "p1"}}]

        assert await people.find_by_id("p1") == {"id": "p1"}

    @pytest.mark.asyncio
    async def test_update_by_id(self, provider, people):
        provider.tx.run.return_value = [{"n": node(id="p1", name="ellie")}]

        updated = await people.update_by_id("p1", {"name": "ellie"})

        assert updated == {"id": "p1", "name": "ellie"}
        provider.tx.run.assert_awaited_once_with(
            "MATCH (n:Person {id:$id}) SET n += $node RETURN n",
            {"id": "p1", "node": {"name": "ellie"}},
        )

    @pytest.mark.asyncio
    async def test_update_missing(self, people):
        assert await people.update_by_id("nope", {"name": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete(self, provider, people):
        await people.delete_by_id("p1")

        provider.tx.run.assert_awaited_once_with("MATCH (n:Person {id:$id}) DELETE n", {"id": "p1"})

    @pytest.mark.asyncio
    async def test_detach_delete(self, provider, people):
        await people.delete_by_id("p1", detach=True)

        provider.tx.run.assert_awaited_once_with("MATCH (n:Person {id:$id}) DETACH DELETE n", {"id": "p1"})

    @pytest.mark.asyncio
    async def test_copy_outgoing(self, provider, people):
        provider.tx.run.return_value = [{"copied": 3}]

        copied = await people.copy_relationships("a", "a2", Direction.OUTGOING)

        assert copied == 3
        provider.tx.run.assert_awaited_once_with(
            "MATCH (source:Person {id:$sourceId})-[r]->(related) "
            "MATCH (target:Person {id:$targetId}) "
            "WHERE related <> target "
            "WITH target, related, type(r) AS relType, properties(r) AS relProps "
            "CALL apoc.create.relationship(target, relType, relProps, related) "
            "YIELD rel RETURN count(rel) AS copied",
            {"sourceId": "a", "targetId": "a2"},
        )

    @pytest.mark.asyncio
    async def test_copy_incoming(self, provider, people):
        provider.tx.run.return_value = [{"copied": 0}]

        copied = await people.copy_relationships("a", "a2", Direction.INCOMING)

        assert copied == 0
        text = provider.tx.run.await_args.args[0]
        assert "(source:Person {id:$sourceId})<-[r]-(related)" in text
        assert "apoc.create.relationship(related, relType, relProps, target)" in text

    @pytest.mark.asyncio
    async def test_driver_error_rolls_back(self, provider, people):
        provider.tx.run.side_effect = RuntimeError("Neo.ClientError.Schema.ConstraintValidationFailed")

        with pytest.raises(RuntimeError):
            await people.create({"id": "p1"})

        provider.tx.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_session_per_call(self, provider, people):
        await people.find_all()
        await people.find_by_id("p1")
        await people.delete_by_id("p1")

        assert provider.opened == 3


class TestRelationRepository:
    """Tests for RelationRepository."""

    def test_conforms(self, knows):
        assert isinstance(knows, RelationStore)

    @pytest.mark.asyncio
    async def test_create(self, provider, knows):
        provider.tx.run.return_value = [{"r": relation(id="k1", since=2020)}]

        rel = await knows.create("a", "b", {"id": "k1", "since": 2020})

        assert rel == RelationshipVersion("KNOWS", {"id": "k1", "since": 2020}, "a", "b")
        provider.tx.run.assert_awaited_once_with(
            "MATCH (startNode:Person {id:$startNodeId}) "
            "MATCH (endNode:Person {id:$endNodeId}) "
            "CREATE (startNode)-[r:KNOWS $relationProperties]->(endNode) RETURN r",
            {"startNodeId": "a", "endNodeId": "b", "relationProperties": {"id": "k1", "since": 2020}},
        )

    @pytest.mark.asyncio
    async def test_create_missing_endpoint(self, provider, knows):
        provider.tx.run.return_value = []

        with pytest.raises(NotFoundError) as exc_info:
            await knows.create("a", "ghost", {"id": "k1"})

        assert exc_info.value.resource_type == "node"

    @pytest.mark.asyncio
    async def test_find_by(self, provider, knows):
        provider.session_mock.run.return_value = [
            {"r": relation(id="k1", since=2020), "startNodeId": "a", "endNodeId": "b"},
        ]

        found = await knows.find_by("since", 2020)

        assert found == [RelationshipVersion("KNOWS", {"id": "k1", "since": 2020}, "a", "b")]
        provider.session_mock.run.assert_awaited_once_with(
            "MATCH (startNode:Person)-[r:KNOWS]->(endNode:Person) WHERE r.since = $value "
            "RETURN r, startNode.id AS startNodeId, endNode.id AS endNodeId",
            {"value": 2020},
        )

    @pytest.mark.asyncio
    async def test_find_by_id(self, provider, knows):
        provider.session_mock.run.return_value = [
            {"r": relation(id="k1"), "startNodeId": "a", "endNodeId": "b"},
        ]

        found = await knows.find_by_id("k1")

        assert found.id == "k1"
        assert provider.session_mock.run.await_args.args[1] == {"id": "k1"}

    @pytest.mark.asyncio
    async def test_find_by_id_missing(self, knows):
        assert await knows.find_by_id("nope") is None

    @pytest.mark.asyncio
    async def test_find_all(self, provider, knows):
        provider.session_mock.run.return_value = [
            {"r": relation(id="k1"), "startNodeId": "a", "endNodeId": "b"},
            {"r": relation(id="k2"), "startNodeId": "b", "endNodeId": "c"},
        ]

        found = await knows.find_all()

        assert [(r.id, r.start_node_id, r.end_node_id) for r in found] == [("k1", "a", "b"), ("k2", "b", "c")]

    @pytest.mark.asyncio
    async def test_update_by_id(self, provider, knows):
        provider.tx.run.return_value = [
            {"r": relation(id="k1", since=2021), "startNodeId": "a", "endNodeId": "b"},
        ]

        updated = await knows.update_by_id("k1", {"since": 2021})

        assert updated.properties == {"id": "k1", "since": 2021}
        text, params = provider.tx.run.await_args.args
        assert "SET r += $relationProperties" in text
        assert params == {"id": "k1", "relationProperties": {"since": 2021}}

    @pytest.mark.asyncio
    async def test_delete_by_id(self, provider, knows):
        provider.tx.run.return_value = [
            {"relType": "KNOWS", "r": {"id": "k1"}, "startNodeId": "a", "endNodeId": "b"},
        ]

        deleted = await knows.delete_by_id("k1")

        assert deleted == RelationshipVersion("KNOWS", {"id": "k1"}, "a", "b")
        text = provider.tx.run.await_args.args[0]
        assert "DELETE r RETURN relType, relProps AS r, startNodeId, endNodeId" in text

    @pytest.mark.asyncio
    async def test_delete_missing(self, knows):
        assert await knows.delete_by_id("nope") is None
