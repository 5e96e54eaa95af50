"""
Statement building and execution.

- QueryBuilder / Statement: immutable fluent Cypher builder
- GraphSession / GraphTransaction / SessionProvider: the query protocol
- NodeProjection / RelationProjection: typed row values
- Neo4jClient: the production SessionProvider
"""

from .builder import QueryBuilder, Statement, identifier
from .neo4j_client import Neo4jClient, Neo4jSession, Neo4jTransaction, to_projection
from .protocol import (
    GraphSession,
    GraphTransaction,
    NodeProjection,
    RelationProjection,
    Row,
    SessionProvider,
    run_statement,
)

__all__ = [
    # Builder
    "QueryBuilder",
    "Statement",
    "identifier",
    # Protocol
    "GraphSession",
    "GraphTransaction",
    "SessionProvider",
    "Row",
    "NodeProjection",
    "RelationProjection",
    "run_statement",
    # Neo4j
    "Neo4jClient",
    "Neo4jSession",
    "Neo4jTransaction",
    "to_projection",
]
