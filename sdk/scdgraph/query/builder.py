"""
Fluent Cypher statement builder.

A QueryBuilder is an ordered, immutable sequence of clause tokens. Each
token is a keyword plus a payload holding the clause text and the partial
parameter mapping that clause contributes.

Example:
    >>> stmt = (
    ...     QueryBuilder()
    ...     .match("(n:Person {id:$id})", {"id": "p1"})
    ...     .set("n += $node", {"node": {"name": "ellie"}})
    ...     .return_("n")
    ...     .build()
    ... )
    >>> stmt.text
    'MATCH (n:Person {id:$id}) SET n += $node RETURN n'

Invariants:
    - Clause methods never mutate the builder they are called on
    - Parameters merge left to right; later clauses win on key collision
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from ..errors import QueryError
from .protocol import GraphSession, Row, run_statement

Params = Dict[str, Any]
QueryPart = Tuple[str, Dict[str, Any]]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Keywords whose payload is a single text fragment.
_TEXT_CLAUSES = {
    "MATCH",
    "OPTIONAL MATCH",
    "MERGE",
    "CREATE",
    "WITH",
    "UNWIND",
    "CALL",
    "YIELD",
    "WHERE",
    "SET",
    "REMOVE",
    "DELETE",
    "DETACH DELETE",
    "SKIP",
    "LIMIT",
}


def identifier(name: str) -> str:
    """Return name if it is safe to splice into a statement.

    Labels, relation types and property keys cannot be passed as Cypher
    parameters, so they are restricted to plain identifiers.

    Raises:
        QueryError: If name is not a plain identifier
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise QueryError(f"Invalid identifier: {name!r}", fragment=str(name))
    return name


@dataclass(frozen=True)
class Statement:
    """A linearized statement ready to run.

    Attributes:
        text: Cypher text
        parameters: Merged parameter mapping
    """

    text: str
    parameters: Params = field(default_factory=dict)


class QueryBuilder:
    """Immutable builder for parameterized Cypher statements."""

    def __init__(self, parts: Tuple[QueryPart, ...] = ()) -> None:
        self._parts = tuple(parts)

    @property
    def parts(self) -> Tuple[QueryPart, ...]:
        return self._parts

    def _append(self, keyword: str, payload: Dict[str, Any]) -> QueryBuilder:
        return QueryBuilder(self._parts + ((keyword, payload),))

    def _text(self, keyword: str, text: str, params: Params | None) -> QueryBuilder:
        return self._append(keyword, {"text": text, "params": dict(params or {})})

    def match(self, pattern: str, params: Params | None = None) -> QueryBuilder:
        return self._text("MATCH", pattern, params)

    def optional_match(self, pattern: str, params: Params | None = None) -> QueryBuilder:
        return self._text("OPTIONAL MATCH", pattern, params)

    def merge(self, pattern: str, params: Params | None = None) -> QueryBuilder:
        return self._text("MERGE", pattern, params)

    def create(self, pattern: str, params: Params | None = None) -> QueryBuilder:
        return self._text("CREATE", pattern, params)

    def with_(self, projection: str, params: Params | None = None) -> QueryBuilder:
        return self._text("WITH", projection, params)

    def unwind(self, expression: str, params: Params | None = None) -> QueryBuilder:
        return self._text("UNWIND", expression, params)

    def call(self, procedure: str, params: Params | None = None) -> QueryBuilder:
        return self._text("CALL", procedure, params)

    def yield_(self, columns: str, params: Params | None = None) -> QueryBuilder:
        return self._text("YIELD", columns, params)

    def where(self, condition: str, params: Params | None = None) -> QueryBuilder:
        return self._text("WHERE", condition, params)

    def set(self, assignments: str, params: Params | None = None) -> QueryBuilder:
        return self._text("SET", assignments, params)

    def remove(self, items: str) -> QueryBuilder:
        return self._text("REMOVE", items, None)

    def delete(self, variables: str) -> QueryBuilder:
        return self._text("DELETE", variables, None)

    def detach_delete(self, variables: str) -> QueryBuilder:
        return self._text("DETACH DELETE", variables, None)

    def skip(self, count: int) -> QueryBuilder:
        return self._text("SKIP", "$skip", {"skip": int(count)})

    def limit(self, count: int) -> QueryBuilder:
        return self._text("LIMIT", "$limit", {"limit": int(count)})

    def order_by(self, column: str, direction: str = "ASC") -> QueryBuilder:
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise QueryError(f"Invalid ORDER BY direction: {direction}", fragment=direction)
        return self._append("ORDER BY", {"column": column, "direction": direction, "params": {}})

    def return_(self, *keys: str) -> QueryBuilder:
        return self._append("RETURN", {"keys": list(keys), "params": {}})

    def build(self) -> Statement:
        """Linearize all clauses into one statement.

        Raises:
            QueryError: If a clause keyword is unknown
        """
        fragments: list[str] = []
        params: Params = {}
        for keyword, payload in self._parts:
            if keyword in _TEXT_CLAUSES:
                fragments.append(f"{keyword} {payload['text']}")
            elif keyword == "ORDER BY":
                fragments.append(f"ORDER BY {payload['column']} {payload['direction']}")
            elif keyword == "RETURN":
                fragments.append(f"RETURN {', '.join(payload['keys'])}")
            else:
                raise QueryError(f"Invalid query part: {keyword}", fragment=keyword)
            params.update(payload.get("params") or {})
        return Statement(" ".join(fragments), params)

    async def execute(self, session: GraphSession, use_transaction: bool = False) -> list[Row]:
        """Build and run against a GraphSession.

        See run_statement for transaction semantics.
        """
        return await run_statement(session, self.build(), use_transaction)

    def __repr__(self) -> str:
        return f"QueryBuilder({[keyword for keyword, _ in self._parts]})"
