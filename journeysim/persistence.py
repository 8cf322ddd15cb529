"""
JourneyStore interface for pluggable journey storage backends.

The simulator never needs a store: journeys can be built in code and replayed
entirely in memory. Stores are the builder's collaborator for keeping journey
definitions between runs.

Three included implementations:
1. InMemoryJourneyStore - Dict-based storage, data lost on exit (testing, prototyping)
2. JsonJourneyStore - One human-readable JSON file per journey
3. PostgresJourneyStore - Relational tables (journeys, journey_nodes, actions, reminders)

Store calls are plain request/await operations. Failures surface as
JourneyStoreError subclasses; nothing is retried internally, the caller decides
whether to resubmit.

Usage pattern:
    store = InMemoryJourneyStore()  # or JsonJourneyStore(), PostgresJourneyStore()
    await store.initialize()

    journey = await store.create_journey("Gym A - Onboarding", is_default=True)
    await store.add_action(journey.id, build_action("A01", Product.BMA))

    await store.close()
"""

import asyncio
import json
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from .config import Config
from .library import get_action_library_item
from .schemas import (
    Action,
    Journey,
    JourneyNode,
    NodeType,
    Reminder,
    time_range_columns,
    time_range_from_columns,
)

try:  # Optional dependency (only needed for PostgresJourneyStore)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for json/memory usage
    asyncpg = None


# =============================
# Module-level Exceptions
# =============================


class JourneyStoreError(Exception):
    """Raised when a store operation fails."""


class JourneyNotFoundError(JourneyStoreError):
    def __init__(self, journey_id: str) -> None:
        self.journey_id = journey_id
        super().__init__(f"Journey '{journey_id}' not found")


class ActionNotFoundError(JourneyStoreError):
    def __init__(self, journey_id: str, action_id: str) -> None:
        self.journey_id = journey_id
        self.action_id = action_id
        super().__init__(f"Action '{action_id}' not found in journey '{journey_id}'")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================
# Journey edit helpers
# =============================
# Backends that store whole journeys (memory, JSON) share these pure edits so
# node bookkeeping is identical everywhere.


def with_action_added(journey: Journey, action: Action) -> Journey:
    """Append ``action`` and an ACTION node at the next position."""
    node = JourneyNode(node_type=NodeType.ACTION, action_id=action.id, position=len(journey.nodes))
    return journey.model_copy(
        update={
            "actions": [*journey.actions, action],
            "nodes": [*journey.nodes, node],
            "updated_at": _utcnow(),
        }
    )


def with_action_updated(journey: Journey, action_id: str, updates: Dict[str, Any]) -> Journey:
    """Apply field ``updates`` to one action, re-validating the result.

    Raises:
        ActionNotFoundError: If the action is not part of the journey
        pydantic.ValidationError: If the updated action is invalid
    """
    current = journey.get_action(action_id)
    if current is None:
        raise ActionNotFoundError(journey.id, action_id)

    merged = {**dict(current), **updates, "id": action_id}
    updated = Action.model_validate(merged)
    actions = [updated if a.id == action_id else a for a in journey.actions]
    return journey.model_copy(update={"actions": actions, "updated_at": _utcnow()})


def with_action_deleted(journey: Journey, action_id: str) -> Journey:
    """Remove an action together with its node and reminders."""
    if journey.get_action(action_id) is None:
        raise ActionNotFoundError(journey.id, action_id)

    return journey.model_copy(
        update={
            "actions": [a for a in journey.actions if a.id != action_id],
            "nodes": [n for n in journey.nodes if n.action_id != action_id],
            "updated_at": _utcnow(),
        }
    )


def with_actions_reordered(journey: Journey, action_ids: List[str]) -> Journey:
    """Reorder actions to follow ``action_ids``.

    Actions missing from ``action_ids`` keep their relative order after the
    listed ones. ACTION node positions become ``index + 1`` (START stays 0).
    """
    by_id = {a.id: a for a in journey.actions}
    for action_id in action_ids:
        if action_id not in by_id:
            raise ActionNotFoundError(journey.id, action_id)

    listed_ids = list(dict.fromkeys(action_ids))
    listed = [by_id[action_id] for action_id in listed_ids]
    rest = [a for a in journey.actions if a.id not in listed_ids]
    ordered = listed + rest
    positions = {action.id: index + 1 for index, action in enumerate(ordered)}

    nodes = [
        node.model_copy(update={"position": positions[node.action_id]})
        if node.action_id in positions
        else node
        for node in journey.nodes
    ]
    nodes.sort(key=lambda node: node.position)
    return journey.model_copy(update={"actions": ordered, "nodes": nodes, "updated_at": _utcnow()})


def default_journey(journeys: List[Journey]) -> Optional[Journey]:
    """Journey the builder opens first: the default one, else the first."""
    for journey in journeys:
        if journey.is_default:
            return journey
    return journeys[0] if journeys else None


class JourneyStore(ABC):
    """Abstract base class for journey storage.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Journeys: load_journeys(), get_journey(), create_journey(),
       update_journey_name(), delete_journey()
    3. Actions: add_action(), update_action(), delete_action(), reorder_actions()

    Every mutating call returns the journey as stored afterwards.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections, create directories or tables."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections and handles."""

    @abstractmethod
    async def load_journeys(self) -> List[Journey]:
        """Return every journey, newest first."""

    @abstractmethod
    async def get_journey(self, journey_id: str) -> Journey:
        """
        Return one journey.

        Raises:
            JourneyNotFoundError: If the journey does not exist
        """

    @abstractmethod
    async def create_journey(self, name: str, is_default: bool = False) -> Journey:
        """Create an empty journey holding only its START node."""

    @abstractmethod
    async def update_journey_name(self, journey_id: str, name: str) -> Journey:
        pass

    @abstractmethod
    async def delete_journey(self, journey_id: str) -> None:
        """Delete a journey with all its nodes, actions and reminders."""

    @abstractmethod
    async def add_action(self, journey_id: str, action: Action) -> Journey:
        pass

    @abstractmethod
    async def update_action(
        self, journey_id: str, action_id: str, updates: Dict[str, Any]
    ) -> Journey:
        pass

    @abstractmethod
    async def delete_action(self, journey_id: str, action_id: str) -> Journey:
        pass

    @abstractmethod
    async def reorder_actions(self, journey_id: str, action_ids: List[str]) -> Journey:
        pass


class _WholeJourneyStore(JourneyStore):
    """Shared logic for stores that read and write complete journeys."""

    @abstractmethod
    async def _read(self, journey_id: str) -> Optional[Journey]:
        pass

    @abstractmethod
    async def _write(self, journey: Journey) -> None:
        pass

    async def get_journey(self, journey_id: str) -> Journey:
        journey = await self._read(journey_id)
        if journey is None:
            raise JourneyNotFoundError(journey_id)
        return journey

    async def create_journey(self, name: str, is_default: bool = False) -> Journey:
        journey = Journey(name=name, is_default=is_default)
        await self._write(journey)
        return journey

    async def update_journey_name(self, journey_id: str, name: str) -> Journey:
        journey = await self.get_journey(journey_id)
        updated = Journey.model_validate({**dict(journey), "name": name, "updated_at": _utcnow()})
        await self._write(updated)
        return updated

    async def add_action(self, journey_id: str, action: Action) -> Journey:
        journey = with_action_added(await self.get_journey(journey_id), action)
        await self._write(journey)
        return journey

    async def update_action(
        self, journey_id: str, action_id: str, updates: Dict[str, Any]
    ) -> Journey:
        journey = with_action_updated(await self.get_journey(journey_id), action_id, updates)
        await self._write(journey)
        return journey

    async def delete_action(self, journey_id: str, action_id: str) -> Journey:
        journey = with_action_deleted(await self.get_journey(journey_id), action_id)
        await self._write(journey)
        return journey

    async def reorder_actions(self, journey_id: str, action_ids: List[str]) -> Journey:
        journey = with_actions_reordered(await self.get_journey(journey_id), action_ids)
        await self._write(journey)
        return journey


class InMemoryJourneyStore(_WholeJourneyStore):
    """In-memory store using a dict (no database, no files).

    Journeys are copied on the way in and out so callers cannot mutate stored
    state by accident. Data is lost when the process exits.
    """

    def __init__(self):
        self.journeys: Dict[str, Journey] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        """No-op: data stays readable after close for post-run inspection."""
        pass

    async def load_journeys(self) -> List[Journey]:
        journeys = [j.model_copy(deep=True) for j in self.journeys.values()]
        return sorted(journeys, key=lambda j: j.created_at, reverse=True)

    async def delete_journey(self, journey_id: str) -> None:
        if self.journeys.pop(journey_id, None) is None:
            raise JourneyNotFoundError(journey_id)

    async def _read(self, journey_id: str) -> Optional[Journey]:
        journey = self.journeys.get(journey_id)
        return journey.model_copy(deep=True) if journey else None

    async def _write(self, journey: Journey) -> None:
        self.journeys[journey.id] = journey.model_copy(deep=True)


class JsonJourneyStore(_WholeJourneyStore):
    """File-based store: one pretty-printed JSON document per journey.

    Directory structure:
    ```
    {base_path}/
      {journey_id}.json
    ```

    All file I/O runs in a worker thread (asyncio.to_thread) so the event loop
    is never blocked. There is no locking; concurrent writers to the same
    directory can lose updates.
    """

    def __init__(self, base_path: Path | str | None = None):
        self.base_path = Path(base_path) if base_path is not None else Config.DATA_DIR

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        return None

    async def load_journeys(self) -> List[Journey]:
        def _read_all() -> List[str]:
            if not self.base_path.exists():
                return []
            return [path.read_text("utf-8") for path in sorted(self.base_path.glob("*.json"))]

        try:
            documents = await asyncio.to_thread(_read_all)
            journeys = [Journey.model_validate_json(document) for document in documents]
        except (OSError, ValueError) as exc:
            raise JourneyStoreError(f"Failed to load journeys from {self.base_path}: {exc}") from exc

        return sorted(journeys, key=lambda j: j.created_at, reverse=True)

    async def delete_journey(self, journey_id: str) -> None:
        path = self._path(journey_id)
        if not path.exists():
            raise JourneyNotFoundError(journey_id)
        await asyncio.to_thread(path.unlink)

    async def _read(self, journey_id: str) -> Optional[Journey]:
        path = self._path(journey_id)
        if not path.exists():
            return None
        try:
            document = await asyncio.to_thread(path.read_text, "utf-8")
            return Journey.model_validate_json(document)
        except (OSError, ValueError) as exc:
            raise JourneyStoreError(f"Failed to read journey '{journey_id}': {exc}") from exc

    async def _write(self, journey: Journey) -> None:
        path = self._path(journey.id)
        payload = journey.model_dump(mode="json")
        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_text, json.dumps(payload, indent=2), "utf-8")
        except OSError as exc:
            raise JourneyStoreError(f"Failed to save journey '{journey.id}': {exc}") from exc

    def _path(self, journey_id: str) -> Path:
        if not journey_id or "/" in journey_id or "\\" in journey_id or journey_id in (".", ".."):
            raise JourneyStoreError(f"Invalid journey id for a file name: '{journey_id}'")
        return self.base_path / f"{journey_id}.json"


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS journeys (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    is_default BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS actions (
    id TEXT PRIMARY KEY,
    journey_id TEXT NOT NULL REFERENCES journeys(id) ON DELETE CASCADE,
    action_type_id TEXT NOT NULL,
    title TEXT,
    event_type TEXT NOT NULL,
    completion_mode TEXT NOT NULL,
    required_count INTEGER,
    product TEXT NOT NULL,
    visible_in_checklist BOOLEAN NOT NULL DEFAULT TRUE,
    guidance_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    time_range_type TEXT NOT NULL DEFAULT 'NONE',
    time_range_duration_days INTEGER,
    time_range_offset_days INTEGER,
    time_range_unit TEXT NOT NULL DEFAULT 'DAYS'
);

CREATE TABLE IF NOT EXISTS journey_nodes (
    id TEXT PRIMARY KEY,
    journey_id TEXT NOT NULL REFERENCES journeys(id) ON DELETE CASCADE,
    node_type TEXT NOT NULL,
    action_id TEXT REFERENCES actions(id) ON DELETE CASCADE,
    position INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS reminders (
    id TEXT PRIMARY KEY,
    action_id TEXT NOT NULL REFERENCES actions(id) ON DELETE CASCADE,
    channel TEXT NOT NULL,
    frequency_type TEXT NOT NULL,
    frequency_days INTEGER,
    order_index INTEGER NOT NULL
);
"""


def action_from_row(row: Any, reminder_rows: List[Any]) -> Action:
    """Rebuild an Action from an ``actions`` row and its ``reminders`` rows.

    Library-owned fields (supported products, guidance support) come from the
    action library, as they did when the action was created.
    """
    item = get_action_library_item(row["action_type_id"])
    return Action(
        id=row["id"],
        action_type_id=row["action_type_id"],
        title=row["title"] or (item.title if item else None),
        event_type=row["event_type"],
        completion_mode=row["completion_mode"],
        required_count=row["required_count"],
        product=row["product"],
        supported_products=list(item.supported_products) if item else [],
        visible_in_checklist=row["visible_in_checklist"],
        supports_guidance=item.supports_guidance if item else False,
        guidance_enabled=row["guidance_enabled"],
        time_range=time_range_from_columns(
            row["time_range_type"],
            row["time_range_duration_days"],
            row["time_range_offset_days"],
            row["time_range_unit"],
        ),
        reminders=[
            Reminder(
                id=r["id"],
                channel=r["channel"],
                frequency=r["frequency_type"],
                frequency_days=r["frequency_days"],
                order=r["order_index"],
            )
            for r in reminder_rows
        ],
    )


class PostgresJourneyStore(JourneyStore):
    """PostgreSQL-backed journey store (asyncpg connection pool).

    Database schema (SCHEMA_SQL, created by initialize()):
    - journeys: id, name, is_default, timestamps
    - actions: one row per action, time range flattened into nullable columns
    - journey_nodes: START/ACTION nodes with positions (defines action order)
    - reminders: one row per reminder, ordered by order_index

    Foreign keys cascade, so deleting a journey removes its actions, nodes and
    reminders. Multi-statement edits run inside a transaction.
    """

    def __init__(self, database_url: Optional[str] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresJourneyStore. Install with `pip install journeysim[postgres]`."
            )

        self.database_url = database_url or Config.DATABASE_URL
        self.pool: Optional["asyncpg.Pool"] = None

    async def initialize(self) -> None:
        if self.pool is None:
            self.pool = await asyncpg.create_pool(self.database_url)
        async with self._connection() as conn:
            await conn.execute(SCHEMA_SQL)

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        assert self.pool is not None, "Store not initialized"
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except asyncpg.PostgresError as exc:
            raise JourneyStoreError(f"Database operation failed: {exc}") from exc

    async def _touch(self, conn: Any, journey_id: str) -> None:
        await conn.execute("UPDATE journeys SET updated_at = $2 WHERE id = $1", journey_id, _utcnow())

    async def _fetch_journey(self, conn: Any, journey_row: Any) -> Journey:
        journey_id = journey_row["id"]
        node_rows = await conn.fetch(
            "SELECT id, node_type, action_id, position FROM journey_nodes "
            "WHERE journey_id = $1 ORDER BY position",
            journey_id,
        )
        action_rows = await conn.fetch("SELECT * FROM actions WHERE journey_id = $1", journey_id)
        reminder_rows = await conn.fetch(
            "SELECT r.* FROM reminders r JOIN actions a ON a.id = r.action_id "
            "WHERE a.journey_id = $1 ORDER BY r.order_index",
            journey_id,
        )

        reminders_by_action: Dict[str, List[Any]] = {}
        for reminder in reminder_rows:
            reminders_by_action.setdefault(reminder["action_id"], []).append(reminder)

        actions_by_id = {
            row["id"]: action_from_row(row, reminders_by_action.get(row["id"], []))
            for row in action_rows
        }
        nodes = [
            JourneyNode(
                id=row["id"],
                node_type=row["node_type"],
                action_id=row["action_id"],
                position=row["position"],
            )
            for row in node_rows
        ]
        # Node positions define action order
        ordered = [actions_by_id[n.action_id] for n in nodes if n.action_id in actions_by_id]

        return Journey(
            id=journey_id,
            name=journey_row["name"],
            is_default=journey_row["is_default"],
            nodes=nodes,
            actions=ordered,
            created_at=journey_row["created_at"],
            updated_at=journey_row["updated_at"],
        )

    async def load_journeys(self) -> List[Journey]:
        async with self._connection() as conn:
            rows = await conn.fetch("SELECT * FROM journeys ORDER BY created_at DESC")
            return [await self._fetch_journey(conn, row) for row in rows]

    async def get_journey(self, journey_id: str) -> Journey:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM journeys WHERE id = $1", journey_id)
            if row is None:
                raise JourneyNotFoundError(journey_id)
            return await self._fetch_journey(conn, row)

    async def create_journey(self, name: str, is_default: bool = False) -> Journey:
        journey = Journey(name=name, is_default=is_default)
        start = journey.nodes[0]
        async with self._connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    "INSERT INTO journeys (id, name, is_default, created_at, updated_at) "
                    "VALUES ($1, $2, $3, $4, $5)",
                    journey.id,
                    journey.name,
                    journey.is_default,
                    journey.created_at,
                    journey.updated_at,
                )
                await conn.execute(
                    "INSERT INTO journey_nodes (id, journey_id, node_type, action_id, position) "
                    "VALUES ($1, $2, $3, NULL, $4)",
                    start.id,
                    journey.id,
                    start.node_type.value,
                    start.position,
                )
        return journey

    async def update_journey_name(self, journey_id: str, name: str) -> Journey:
        async with self._connection() as conn:
            result = await conn.execute(
                "UPDATE journeys SET name = $2, updated_at = $3 WHERE id = $1",
                journey_id,
                name,
                _utcnow(),
            )
        if result.endswith(" 0"):
            raise JourneyNotFoundError(journey_id)
        return await self.get_journey(journey_id)

    async def delete_journey(self, journey_id: str) -> None:
        async with self._connection() as conn:
            result = await conn.execute("DELETE FROM journeys WHERE id = $1", journey_id)
        if result.endswith(" 0"):
            raise JourneyNotFoundError(journey_id)

    async def _insert_reminders(self, conn: Any, action: Action) -> None:
        if not action.reminders:
            return
        await conn.executemany(
            "INSERT INTO reminders (id, action_id, channel, frequency_type, frequency_days, order_index) "
            "VALUES ($1, $2, $3, $4, $5, $6)",
            [
                (r.id, action.id, r.channel.value, r.frequency.value, r.frequency_days, r.order)
                for r in action.reminders
            ],
        )

    def _action_values(self, action: Action) -> List[Any]:
        columns = time_range_columns(action.time_range)
        return [
            action.id,
            action.action_type_id,
            action.title,
            action.event_type,
            action.completion_mode.value,
            action.required_count,
            action.product.value,
            action.visible_in_checklist,
            action.guidance_enabled,
            columns["time_range_type"],
            columns["time_range_duration_days"],
            columns["time_range_offset_days"],
            columns["time_range_unit"],
        ]

    async def add_action(self, journey_id: str, action: Action) -> Journey:
        journey = await self.get_journey(journey_id)
        updated = with_action_added(journey, action)
        node = updated.nodes[-1]

        async with self._connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    "INSERT INTO actions (id, journey_id, action_type_id, title, event_type, "
                    "completion_mode, required_count, product, visible_in_checklist, guidance_enabled, "
                    "time_range_type, time_range_duration_days, time_range_offset_days, time_range_unit) "
                    "VALUES ($1, $14, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)",
                    *self._action_values(action),
                    journey_id,
                )
                await self._insert_reminders(conn, action)
                await conn.execute(
                    "INSERT INTO journey_nodes (id, journey_id, node_type, action_id, position) "
                    "VALUES ($1, $2, $3, $4, $5)",
                    node.id,
                    journey_id,
                    node.node_type.value,
                    action.id,
                    node.position,
                )
                await self._touch(conn, journey_id)
        return updated

    async def update_action(
        self, journey_id: str, action_id: str, updates: Dict[str, Any]
    ) -> Journey:
        journey = with_action_updated(await self.get_journey(journey_id), action_id, updates)
        action = journey.get_action(action_id)

        async with self._connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    "UPDATE actions SET action_type_id = $2, title = $3, event_type = $4, "
                    "completion_mode = $5, required_count = $6, product = $7, visible_in_checklist = $8, "
                    "guidance_enabled = $9, time_range_type = $10, time_range_duration_days = $11, "
                    "time_range_offset_days = $12, time_range_unit = $13 WHERE id = $1",
                    *self._action_values(action),
                )
                await conn.execute("DELETE FROM reminders WHERE action_id = $1", action_id)
                await self._insert_reminders(conn, action)
                await self._touch(conn, journey_id)
        return journey

    async def delete_action(self, journey_id: str, action_id: str) -> Journey:
        journey = with_action_deleted(await self.get_journey(journey_id), action_id)
        async with self._connection() as conn:
            async with conn.transaction():
                # Cascades to the action's node and reminders
                await conn.execute("DELETE FROM actions WHERE id = $1", action_id)
                await self._touch(conn, journey_id)
        return journey

    async def reorder_actions(self, journey_id: str, action_ids: List[str]) -> Journey:
        journey = with_actions_reordered(await self.get_journey(journey_id), action_ids)
        async with self._connection() as conn:
            async with conn.transaction():
                await conn.executemany(
                    "UPDATE journey_nodes SET position = $2 WHERE id = $1",
                    [(node.id, node.position) for node in journey.nodes],
                )
                await self._touch(conn, journey_id)
        return journey


def build_store(kind: Optional[str] = None) -> JourneyStore:
    """Create the store named by ``kind`` (defaults to Config.STORE)."""
    kind = kind or Config.STORE
    if kind == "memory":
        return InMemoryJourneyStore()
    if kind == "json":
        return JsonJourneyStore(Config.DATA_DIR)
    if kind == "postgres":
        return PostgresJourneyStore(Config.DATABASE_URL)
    raise ValueError(f"Unknown journey store '{kind}'")
