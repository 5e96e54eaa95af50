"""
Unit tests for the Neo4j adapter.

The driver is replaced with mocks; no server is needed.

Tests cover:
- Connect with retries
- Session lifecycle
- Row conversion
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from neo4j.exceptions import ServiceUnavailable
from neo4j.graph import Graph, Node

from sdk.scdgraph.config import Neo4jSettings
from sdk.scdgraph.errors import ConnectionError
from sdk.scdgraph.query.builder import Statement
from sdk.scdgraph.query.neo4j_client import Neo4jClient, Neo4jSession, Neo4jTransaction, to_projection
from sdk.scdgraph.query.protocol import NodeProjection, SessionProvider, run_statement

DRIVER_FACTORY = "sdk.scdgraph.query.neo4j_client.AsyncGraphDatabase.driver"


class FakeRecord:
    def __init__(self, **values):
        self._values = values

    def items(self):
        return list(self._values.items())


class FakeResult:
    """Async-iterable stand-in for neo4j.AsyncResult."""

    def __init__(self, records):
        self._records = list(records)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for record in self._records:
            yield record


def make_driver():
    driver = MagicMock()
    driver.verify_connectivity = AsyncMock()
    driver.close = AsyncMock()
    return driver


@pytest.fixture
def settings():
    return Neo4jSettings(
        uri="bolt://graph:7687",
        user="neo4j",
        password="pw",
        database="scd",
        connect_retries=3,
        connect_retry_delay=0,
        _env_file=None,
    )


class TestConnect:
    """Tests for Neo4jClient.connect()."""

    @pytest.mark.asyncio
    async def test_connect(self, settings):
        driver = make_driver()
        with patch(DRIVER_FACTORY, return_value=driver) as factory:
            client = Neo4jClient(settings)
            await client.connect()

        assert client.is_connected
        factory.assert_called_once_with(
            "bolt://graph:7687",
            auth=("neo4j", "pw"),
            max_connection_pool_size=settings.max_connection_pool_size,
            max_transaction_retry_time=settings.max_transaction_retry_time,
            connection_timeout=settings.connection_timeout,
        )
        driver.verify_connectivity.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_retries_then_succeeds(self, settings):
        driver = make_driver()
        driver.verify_connectivity.side_effect = [ServiceUnavailable("down"), None]
        with patch(DRIVER_FACTORY, return_value=driver):
            client = Neo4jClient(settings)
            await client.connect()

        assert client.is_connected
        assert driver.verify_connectivity.await_count == 2

    @pytest.mark.asyncio
    async def test_connect_gives_up(self, settings):
        driver = make_driver()
        driver.verify_connectivity.side_effect = ServiceUnavailable("down")
        with patch(DRIVER_FACTORY, return_value=driver):
            client = Neo4jClient(settings)
            with pytest.raises(ConnectionError) as exc_info:
                await client.connect()

        assert exc_info.value.attempts == 3
        assert exc_info.value.uri == "bolt://graph:7687"
        assert driver.verify_connectivity.await_count == 3
        driver.close.assert_awaited_once()
        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, settings):
        driver = make_driver()
        with patch(DRIVER_FACTORY, return_value=driver) as factory:
            client = Neo4jClient(settings)
            await client.connect()
            await client.connect()

        factory.assert_called_once()

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, settings):
        driver = make_driver()
        with patch(DRIVER_FACTORY, return_value=driver):
            async with Neo4jClient(settings) as client:
                assert client.is_connected

        driver.close.assert_awaited_once()
        assert not client.is_connected


class TestSession:
    """Tests for session handling."""

    def test_client_is_provider(self, settings):
        assert isinstance(Neo4jClient(settings), SessionProvider)

    @pytest.mark.asyncio
    async def test_session_requires_connection(self, settings):
        client = Neo4jClient(settings)

        with pytest.raises(ConnectionError):
            async with client.session():
                pass

    @pytest.mark.asyncio
    async def test_session_uses_database(self, settings):
        driver = make_driver()
        raw_session = MagicMock()
        driver.session.return_value.__aenter__.return_value = raw_session
        with patch(DRIVER_FACTORY, return_value=driver):
            client = Neo4jClient(settings)
            await client.connect()
            async with client.session() as session:
                assert isinstance(session, Neo4jSession)

        driver.session.assert_called_once_with(database="scd")

    @pytest.mark.asyncio
    async def test_run_collects_rows(self):
        raw_session = MagicMock()
        raw_session.run = AsyncMock(return_value=FakeResult([FakeRecord(one=1), FakeRecord(one=2)]))

        rows = await Neo4jSession(raw_session).run("UNWIND [1, 2] AS one RETURN one")

        assert rows == [{"one": 1}, {"one": 2}]
        raw_session.run.assert_awaited_once_with("UNWIND [1, 2] AS one RETURN one", {})

    @pytest.mark.asyncio
    async def test_transaction(self):
        raw_tx = MagicMock()
        raw_tx.run = AsyncMock(return_value=FakeResult([FakeRecord(copied=2)]))
        raw_tx.commit = AsyncMock()
        raw_session = MagicMock()
        raw_session.begin_transaction = AsyncMock(return_value=raw_tx)

        tx = await Neo4jSession(raw_session).begin_transaction()
        rows = await tx.run("RETURN 2 AS copied", {"x": 1})
        await tx.commit()

        assert rows == [{"copied": 2}]
        raw_tx.run.assert_awaited_once_with("RETURN 2 AS copied", {"x": 1})
        raw_tx.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rollback_skipped_when_closed(self):
        """After a failed commit the driver has closed the transaction."""
        raw_tx = MagicMock()
        raw_tx.closed = MagicMock(return_value=True)
        raw_tx.rollback = AsyncMock()

        await Neo4jTransaction(raw_tx).rollback()

        raw_tx.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_rollback_when_open(self):
        raw_tx = MagicMock()
        raw_tx.closed = MagicMock(return_value=False)
        raw_tx.rollback = AsyncMock()

        await Neo4jTransaction(raw_tx).rollback()

        raw_tx.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_failure_reaches_caller(self):
        """run_statement surfaces the driver's commit error unchanged."""
        raw_tx = MagicMock()
        raw_tx.run = AsyncMock(return_value=FakeResult([]))
        raw_tx.commit = AsyncMock(side_effect=ServiceUnavailable("commit lost"))
        raw_tx.closed = MagicMock(return_value=True)
        raw_tx.rollback = AsyncMock()
        raw_session = MagicMock()
        raw_session.begin_transaction = AsyncMock(return_value=raw_tx)

        with pytest.raises(ServiceUnavailable, match="commit lost"):
            await run_statement(Neo4jSession(raw_session), Statement("CREATE (n)", {}), use_transaction=True)

        raw_tx.rollback.assert_not_called()


class TestToProjection:
    """Tests for to_projection."""

    def test_node(self):
        value = Node(Graph(), "4:db:7", 7, ["Person"], {"id": "p1", "name": "joel"})

        projection = to_projection(value)

        assert projection == NodeProjection("4:db:7", frozenset({"Person"}), {"id": "p1", "name": "joel"})

    def test_list_of_nodes(self):
        value = [Node(Graph(), "4:db:1", 1, ["Person"], {"id": "p1"})]

        assert to_projection(value)[0].properties == {"id": "p1"}

    @pytest.mark.parametrize("value", [1, "x", None, {"k": "v"}])
    def test_scalars_pass_through(self, value):
        assert to_projection(value) == value
