"""
Slowly-changing-dimension (type 2) versioning engine.

Every logical entity is a chain of immutable physical records sharing one
scd_id. New versions and status changes append a record to the chain; no
record is ever modified by the engine.

ScdEngine holds the whole algorithm and talks to storage only through a
VersionAdapter (properties, find_by_id, find_by, append). Two facades bind
it to the plain repositories:
- ScdEntityRepository: nodes; a new version also inherits the anchor's
  relations, copied in both directions concurrently
- ScdRelationRepository: relations; a new version binds to the same two
  node records as its anchor

Invariants:
    - The current version is recomputed from a full chain scan on every read
    - Ordering is by scd_create_date descending, ties broken by id descending
    - Status changes always fork from the latest version, whatever the
      caller's anchor pointed at
    - Time windows are inclusive on both bounds

Concurrency:
    Two concurrent status changes on the same chain can both read the same
    latest version and each append a sibling. Nothing here serializes them;
    callers needing a total order must coordinate outside the engine.

Example:
    >>> people = ScdEntityRepository(EntityRepository(client, "Person"))
    >>> v1 = await people.create({"name": "joel", "scd_status": "active",
    ...                           "scd_create_date": 100, "scd_insert_by": "etl"})
    >>> v2 = await people.create_version(v1["id"], {**v1, "scd_create_date": 200})
    >>> await people.deactivate(v2, {"scd_create_date": 300, "scd_insert_by": "etl"})
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import abstractmethod
from typing import Any, Callable, Generic, List, Mapping, Optional, Protocol, Tuple, TypeVar

from ..errors import AlreadyInStateError, InvalidRangeError, NotFoundError, ValidationError
from ..repository.base import Direction, Entity, EntityStore, RelationStore
from ..types import RelationshipVersion, ScdStatus, merge_version_data, to_epoch_millis

logger = logging.getLogger(__name__)

V = TypeVar("V")


def new_id() -> str:
    """Default id factory."""
    return str(uuid.uuid4())


class VersionAdapter(Protocol[V]):
    """Storage capabilities the engine needs for one kind of record."""

    resource_type: str

    @abstractmethod
    def properties(self, version: V) -> Mapping[str, Any]:
        ...

    @abstractmethod
    async def find_by_id(self, id: Any) -> Optional[V]:
        ...

    @abstractmethod
    async def find_by(self, attribute: str, value: Any) -> List[V]:
        ...

    @abstractmethod
    async def append(self, anchor: V, data: Mapping[str, Any]) -> V:
        """Persist data as a new record in the anchor's chain."""
        ...


class EntityVersionAdapter:
    """VersionAdapter for nodes."""

    resource_type = "node"

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def properties(self, version: Entity) -> Mapping[str, Any]:
        return version

    async def find_by_id(self, id: Any) -> Optional[Entity]:
        return await self.store.find_by_id(id)

    async def find_by(self, attribute: str, value: Any) -> List[Entity]:
        return await self.store.find_by(attribute, value)

    async def append(self, anchor: Entity, data: Mapping[str, Any]) -> Entity:
        created = await self.store.create(data)
        # Each copy opens its own session in the Cypher store
        await asyncio.gather(
            self.store.copy_relationships(anchor["id"], created["id"], Direction.INCOMING),
            self.store.copy_relationships(anchor["id"], created["id"], Direction.OUTGOING),
        )
        return created


class RelationVersionAdapter:
    """VersionAdapter for relations."""

    resource_type = "relation"

    def __init__(self, store: RelationStore) -> None:
        self.store = store

    def properties(self, version: RelationshipVersion) -> Mapping[str, Any]:
        return version.properties

    async def find_by_id(self, id: Any) -> Optional[RelationshipVersion]:
        return await self.store.find_by_id(id)

    async def find_by(self, attribute: str, value: Any) -> List[RelationshipVersion]:
        return await self.store.find_by(attribute, value)

    async def append(self, anchor: RelationshipVersion, data: Mapping[str, Any]) -> RelationshipVersion:
        return await self.store.create(anchor.start_node_id, anchor.end_node_id, data)


class ScdEngine(Generic[V]):
    """Version-chain operations over a VersionAdapter.

    Attributes:
        adapter: Storage capabilities for one record kind
        id_factory: Allocates id / scd_id when the caller leaves them out
    """

    def __init__(
        self,
        adapter: VersionAdapter[V],
        *,
        id_factory: Callable[[], Any] = new_id,
    ) -> None:
        self.adapter = adapter
        self.id_factory = id_factory

    def _prepare(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Fill missing identities and check the record is a complete version."""
        identities = {}
        if data.get("id") is None:
            identities["id"] = self.id_factory()
        if data.get("scd_id") is None:
            identities["scd_id"] = self.id_factory()
        return merge_version_data(data, identities)

    def _created_at(self, version: V) -> float:
        return to_epoch_millis(self.adapter.properties(version).get("scd_create_date"))

    def _sort_key(self, version: V) -> Tuple[float, str]:
        return (self._created_at(version), str(self.adapter.properties(version).get("id")))

    async def create_version(self, anchor_id: Any, data: Mapping[str, Any]) -> V:
        """Append a new version to the chain of the record at anchor_id.

        The new record always joins the anchor's chain: any scd_id in data
        is replaced by the anchor's. An id copied over from the anchor is
        replaced by a fresh one.

        Raises:
            NotFoundError: If no record has id anchor_id
            ValidationError: If data is not a complete version, or its id
                already belongs to another record
        """
        existing = await self.adapter.find_by_id(anchor_id)
        if existing is None:
            raise NotFoundError(
                f"{self.adapter.resource_type.capitalize()} with ID {anchor_id} does not exist or is deleted",
                resource_type=self.adapter.resource_type,
                resource_id=anchor_id,
            )
        anchor_props = self.adapter.properties(existing)
        scd_id = anchor_props.get("scd_id")
        if scd_id is None:
            raise ValidationError(
                f"{self.adapter.resource_type.capitalize()} {anchor_id} is not part of a version chain",
                field_name="scd_id",
            )

        data = dict(data)
        if data.get("id") is not None and data["id"] == anchor_props.get("id"):
            data["id"] = None
        elif data.get("id") is not None and await self.adapter.find_by_id(data["id"]) is not None:
            raise ValidationError(
                f"{self.adapter.resource_type.capitalize()} with ID {data['id']} already exists",
                field_name="id",
            )
        payload = self._prepare({**data, "scd_id": scd_id})
        created = await self.adapter.append(existing, payload)
        logger.info(
            "Created version",
            extra={
                "resource_type": self.adapter.resource_type,
                "scd_id": scd_id,
                "anchor_id": anchor_id,
                "version_id": payload["id"],
            },
        )
        return created

    async def find_versions(self, scd_id: Any) -> List[V]:
        """All records of a chain, unordered."""
        return await self.adapter.find_by("scd_id", scd_id)

    async def find_versions_by_time_range(self, scd_id: Any, time_range: Tuple[Any, Any]) -> List[V]:
        """Records of a chain created within [start, end], both inclusive.

        Raises:
            InvalidRangeError: If start is after end
        """
        start, end = time_range
        lower, upper = to_epoch_millis(start), to_epoch_millis(end)
        if lower > upper:
            raise InvalidRangeError(start, end)
        return [
            version
            for version in await self.find_versions(scd_id)
            if lower <= self._created_at(version) <= upper
        ]

    async def sort_versions_by_creation_date(self, scd_id: Any) -> List[V]:
        """Records of a chain, most recent first."""
        return sorted(await self.find_versions(scd_id), key=self._sort_key, reverse=True)

    get_versions_by_creation_date = sort_versions_by_creation_date

    async def get_latest_version(self, scd_id: Any) -> Optional[V]:
        versions = await self.sort_versions_by_creation_date(scd_id)
        return versions[0] if versions else None

    async def get_latest_active_version(self, scd_id: Any) -> Optional[V]:
        """Most recent version whose status is active.

        This can be older than the latest version when the chain ends in
        inactive versions.
        """
        for version in await self.sort_versions_by_creation_date(scd_id):
            if self.adapter.properties(version).get("scd_status") == ScdStatus.ACTIVE.value:
                return version
        return None

    async def _resolve_scd_id(self, anchor: Any) -> Any:
        if isinstance(anchor, RelationshipVersion):
            anchor = anchor.properties
        if not isinstance(anchor, Mapping):
            raise ValidationError(f"Anchor must be a mapping or a relationship, got {type(anchor).__name__}")
        if anchor.get("scd_id") is not None:
            return anchor["scd_id"]
        if anchor.get("id") is not None:
            record = await self.adapter.find_by_id(anchor["id"])
            if record is None:
                raise NotFoundError(
                    f"{self.adapter.resource_type.capitalize()} with ID {anchor['id']} does not exist",
                    resource_type=self.adapter.resource_type,
                    resource_id=anchor["id"],
                )
            return self.adapter.properties(record).get("scd_id")
        raise ValidationError("Anchor needs an scd_id or an id", field_name="scd_id")

    async def update_scd_status(
        self,
        anchor: Any,
        scd_fields: Mapping[str, Any],
        status: ScdStatus,
    ) -> V:
        """Append a copy of the latest version with a new status.

        Args:
            anchor: Any record of the chain (mapping or RelationshipVersion);
                only used to find the chain
            scd_fields: Values for the new version, typically scd_create_date
                and scd_insert_by. An "id" here becomes the new record's id.
            status: Target status

        Raises:
            NotFoundError: If the chain is empty
            AlreadyInStateError: If the latest version already has status
            ValidationError: If scd_fields carries scd_status
        """
        if "scd_status" in scd_fields:
            raise ValidationError(
                "scd_status is set by activate/deactivate, not by the caller",
                field_name="scd_status",
            )
        scd_id = await self._resolve_scd_id(anchor)
        latest = await self.get_latest_version(scd_id)
        if latest is None:
            raise NotFoundError(
                f"{self.adapter.resource_type.capitalize()} with SCD_ID {scd_id} does not exist",
                resource_type=self.adapter.resource_type,
                resource_id=scd_id,
            )
        latest_props = self.adapter.properties(latest)
        if latest_props.get("scd_status") == status.value:
            raise AlreadyInStateError(scd_id, status.value)

        data = {
            **latest_props,
            **scd_fields,
            "scd_status": status.value,
            "id": scd_fields.get("id") or self.id_factory(),
        }
        logger.info(
            "Changing status",
            extra={
                "resource_type": self.adapter.resource_type,
                "scd_id": scd_id,
                "from_status": latest_props.get("scd_status"),
                "to_status": status.value,
            },
        )
        return await self.create_version(latest_props.get("id"), data)

    async def deactivate(self, anchor: Any, scd_fields: Optional[Mapping[str, Any]] = None) -> V:
        return await self.update_scd_status(anchor, scd_fields or {}, ScdStatus.INACTIVE)

    async def activate(self, anchor: Any, scd_fields: Optional[Mapping[str, Any]] = None) -> V:
        return await self.update_scd_status(anchor, scd_fields or {}, ScdStatus.ACTIVE)


class ScdEntityRepository(ScdEngine[Entity]):
    """Versioned nodes of one label.

    Attributes:
        store: The plain node repository, for CRUD outside versioning
    """

    def __init__(self, store: EntityStore, *, id_factory: Callable[[], Any] = new_id) -> None:
        super().__init__(EntityVersionAdapter(store), id_factory=id_factory)
        self.store = store

    async def create(self, entity: Mapping[str, Any]) -> Entity:
        """Seed a new chain (or add to the chain named by entity's scd_id)."""
        return await self.store.create(self._prepare(entity))


class ScdRelationRepository(ScdEngine[RelationshipVersion]):
    """Versioned relations of one (start, type, end) triple.

    Attributes:
        store: The plain relation repository
    """

    def __init__(self, store: RelationStore, *, id_factory: Callable[[], Any] = new_id) -> None:
        super().__init__(RelationVersionAdapter(store), id_factory=id_factory)
        self.store = store

    async def create(
        self,
        start_node_id: Any,
        end_node_id: Any,
        properties: Mapping[str, Any],
    ) -> RelationshipVersion:
        """Seed a new relation chain between two existing nodes.

        Raises:
            NotFoundError: If either endpoint does not exist
        """
        return await self.store.create(start_node_id, end_node_id, self._prepare(properties))
