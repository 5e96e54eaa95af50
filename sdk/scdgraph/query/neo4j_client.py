"""
Neo4j adapter for the query protocol.

Wraps the official async driver:
- Neo4jClient: driver lifecycle plus SessionProvider
- Neo4jSession / Neo4jTransaction: GraphSession / GraphTransaction

Results are fully consumed inside run() and converted to rows whose graph
values are NodeProjection / RelationProjection.

Invariants:
    - Driver exceptions propagate unchanged
    - Only connect() retries, and only for connectivity failures
    - Pool size and transaction retry time are handed to the driver as-is

Example:
    >>> async with Neo4jClient(Neo4jSettings()) as client:
    ...     async with client.session() as session:
    ...         rows = await session.run("MATCH (n:Person) RETURN n")
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncResult, AsyncSession, AsyncTransaction
from neo4j.exceptions import ServiceUnavailable, SessionExpired
from neo4j.graph import Node, Relationship

from ..config import Neo4jSettings
from ..errors import ConnectionError
from .protocol import NodeProjection, RelationProjection, Row

logger = logging.getLogger(__name__)


def to_projection(value: Any) -> Any:
    """Map a driver value to a plain typed object."""
    if isinstance(value, Node):
        return NodeProjection(
            element_id=value.element_id,
            labels=frozenset(value.labels),
            properties=dict(value),
        )
    if isinstance(value, Relationship):
        start, end = value.start_node, value.end_node
        return RelationProjection(
            element_id=value.element_id,
            type=value.type,
            properties=dict(value),
            start_element_id=start.element_id if start is not None else None,
            end_element_id=end.element_id if end is not None else None,
        )
    if isinstance(value, list):
        return [to_projection(item) for item in value]
    return value


async def _collect(result: AsyncResult) -> List[Row]:
    return [
        {key: to_projection(value) for key, value in record.items()}
        async for record in result
    ]


class Neo4jTransaction:
    """GraphTransaction over neo4j.AsyncTransaction."""

    def __init__(self, tx: AsyncTransaction) -> None:
        self._tx = tx

    async def run(self, text: str, parameters: Optional[Dict[str, Any]] = None) -> List[Row]:
        result = await self._tx.run(text, parameters or {})
        return await _collect(result)

    async def commit(self) -> None:
        await self._tx.commit()

    async def rollback(self) -> None:
        # The driver closes the transaction when commit fails
        if self._tx.closed():
            return
        await self._tx.rollback()


class Neo4jSession:
    """GraphSession over neo4j.AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def run(self, text: str, parameters: Optional[Dict[str, Any]] = None) -> List[Row]:
        result = await self._session.run(text, parameters or {})
        return await _collect(result)

    async def begin_transaction(self) -> Neo4jTransaction:
        return Neo4jTransaction(await self._session.begin_transaction())


class Neo4jClient:
    """Driver owner and SessionProvider.

    Attributes:
        settings: Connection settings
    """

    def __init__(self, settings: Neo4jSettings | None = None) -> None:
        self.settings = settings or Neo4jSettings()
        self._driver: AsyncDriver | None = None

    @property
    def is_connected(self) -> bool:
        return self._driver is not None

    def _create_driver(self) -> AsyncDriver:
        return AsyncGraphDatabase.driver(
            self.settings.uri,
            auth=(self.settings.user, self.settings.password.get_secret_value()),
            max_connection_pool_size=self.settings.max_connection_pool_size,
            max_transaction_retry_time=self.settings.max_transaction_retry_time,
            connection_timeout=self.settings.connection_timeout,
        )

    async def connect(self) -> None:
        """Create the driver and verify the server is reachable.

        Raises:
            ConnectionError: If every attempt fails
        """
        if self._driver is not None:
            return

        attempts = self.settings.connect_retries
        driver = self._create_driver()
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                await driver.verify_connectivity()
            except (ServiceUnavailable, SessionExpired, OSError) as e:
                last_error = e
                logger.warning(
                    "Neo4j connectivity check failed",
                    extra={"uri": self.settings.uri, "attempt": attempt, "error": str(e)},
                )
                if attempt < attempts:
                    await asyncio.sleep(self.settings.connect_retry_delay)
                continue
            self._driver = driver
            logger.info("Connected to Neo4j", extra={"uri": self.settings.uri, "attempt": attempt})
            return

        await driver.close()
        raise ConnectionError(
            f"Unable to connect to Neo4j after {attempts} attempts: {last_error}",
            uri=self.settings.uri,
            attempts=attempts,
        ) from last_error

    async def close(self) -> None:
        """Close the driver and its connection pool."""
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("Neo4j driver closed", extra={"uri": self.settings.uri})

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Neo4jSession]:
        """Open a fresh session on the configured database.

        Raises:
            ConnectionError: If connect() has not been called
        """
        if self._driver is None:
            raise ConnectionError("Neo4jClient is not connected", uri=self.settings.uri)
        async with self._driver.session(database=self.settings.database) as session:
            yield Neo4jSession(session)

    async def __aenter__(self) -> Neo4jClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
