"""
Query protocol between repositories and the graph database client.

Repositories consume exactly this contract:
- GraphSession: run a parameterized statement, or open a transaction
- GraphTransaction: run, commit, rollback
- SessionProvider: hand out a fresh session per logical operation

Rows are plain dicts keyed by the RETURN column names. Graph values are
mapped to NodeProjection / RelationProjection; everything else passes
through as the driver returned it.

Invariants:
    - A failed transactional statement is rolled back before the original
      exception propagates; a failing rollback is logged, never raised
    - No retry happens at this layer

How to change safely:
    - New adapters must implement GraphSession and SessionProvider
    - Keep projections free of driver types so tests can build them by hand
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncContextManager,
    Dict,
    FrozenSet,
    List,
    Optional,
    Protocol,
    TYPE_CHECKING,
    runtime_checkable,
)

if TYPE_CHECKING:
    from .builder import Statement

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@dataclass(frozen=True)
class NodeProjection:
    """A node value inside a row.

    Attributes:
        element_id: Database-internal identity of the node
        labels: Node labels
        properties: Stored property mapping
    """

    element_id: Optional[str]
    labels: FrozenSet[str] = frozenset()
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RelationProjection:
    """A relationship value inside a row.

    Attributes:
        element_id: Database-internal identity of the relationship
        type: Relationship type name
        properties: Stored property mapping
        start_element_id: Internal identity of the start node
        end_element_id: Internal identity of the end node
    """

    element_id: Optional[str]
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)
    start_element_id: Optional[str] = None
    end_element_id: Optional[str] = None


@runtime_checkable
class GraphTransaction(Protocol):
    """An explicit transaction opened from a GraphSession."""

    @abstractmethod
    async def run(self, text: str, parameters: Optional[Dict[str, Any]] = None) -> List[Row]:
        ...

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...


@runtime_checkable
class GraphSession(Protocol):
    """A logical session against the graph database."""

    @abstractmethod
    async def run(self, text: str, parameters: Optional[Dict[str, Any]] = None) -> List[Row]:
        """Run a statement in an auto-commit transaction.

        Returns:
            All rows, fully consumed
        """
        ...

    @abstractmethod
    async def begin_transaction(self) -> GraphTransaction:
        ...


@runtime_checkable
class SessionProvider(Protocol):
    """Source of sessions, one per logical operation.

    Example:
        >>> async with provider.session() as session:
        ...     rows = await session.run("RETURN 1 AS one")
    """

    @abstractmethod
    def session(self) -> AsyncContextManager[GraphSession]:
        ...


async def run_statement(
    session: GraphSession,
    statement: "Statement",
    use_transaction: bool = False,
) -> List[Row]:
    """Run a built statement.

    Args:
        session: Session to run on
        statement: Statement from QueryBuilder.build()
        use_transaction: Run inside an explicit transaction that is
            committed on success and rolled back on any failure

    Returns:
        Rows produced by the statement

    Raises:
        Whatever the session or transaction raises, unchanged
    """
    logger.debug(
        "Running statement",
        extra={"cypher": statement.text, "transactional": use_transaction},
    )
    if not use_transaction:
        return await session.run(statement.text, statement.parameters)

    tx = await session.begin_transaction()
    try:
        rows = await tx.run(statement.text, statement.parameters)
        await tx.commit()
    except BaseException as error:
        logger.warning("Statement failed, rolling back", extra={"cypher": statement.text})
        await _rollback(tx, statement)
        raise error
    return rows


async def _rollback(tx: GraphTransaction, statement: "Statement") -> None:
    # A transaction whose commit failed may already be closed; its rollback
    # error must not replace the original failure.
    try:
        await tx.rollback()
    except Exception as rollback_error:
        logger.warning(
            "Rollback failed",
            extra={"cypher": statement.text, "error": str(rollback_error)},
        )
