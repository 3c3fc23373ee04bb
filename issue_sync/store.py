"""Record persistence on top of a LangGraph Store.

Every record type lives in its own namespace and is keyed by its generated
id. Values are stored as plain JSON so the same records work with the
in-memory store in development and PostgreSQL in production.

Namespaces:
- ("issues",): issue <-> challenge mappings
- ("projects",): repositories registered for synchronization
- ("user_mappings",): platform handle <-> tracker accounts
- ("tracker_users",): copilot tracker credentials
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from .errors import DuplicateIssueError, NotFoundError
from .models import Record, utcnow

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)

SCAN_PAGE_SIZE = 100


def get_store(database_url: Optional[str] = None):
    """Get the LangGraph Store backing the record store.

    Uses PostgreSQL when DATABASE_URL is set.
    Falls back to in-memory store for development.

    Returns:
        LangGraph Store instance
    """
    database_url = database_url or os.environ.get("DATABASE_URL")

    if not database_url:
        logger.warning(
            "DATABASE_URL not set - using in-memory store (data will be lost)"
        )
        from langgraph.store.memory import InMemoryStore

        return InMemoryStore()

    try:
        from langgraph.store.postgres import PostgresStore
        from psycopg import Connection
        from psycopg.rows import dict_row

        conn = Connection.connect(
            database_url,
            autocommit=True,
            prepare_threshold=0,
            row_factory=dict_row,
        )
        store = PostgresStore(conn)
        store.setup()

        logger.info("Initialized PostgresStore for issue records")
        return store

    except ImportError as e:
        logger.error(f"Failed to import PostgresStore dependencies: {e}")
        raise
    except Exception as e:
        logger.error(f"Failed to initialize PostgresStore: {e}")
        raise


def _json_filter(filter: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not filter:
        return None
    return {k: v.value if isinstance(v, Enum) else v for k, v in filter.items()}


class RecordStore:
    """CRUD and filtered scans over typed records.

    ``create`` with ``unique`` fields is a compare-and-set: the existence check
    and the write happen under a lock scoped to the unique key, so two
    concurrent creations for the same key cannot both succeed.
    """

    def __init__(self, store=None):
        """Initialize the record store.

        Args:
            store: Optional LangGraph Store instance. If not provided,
                   creates one using get_store().
        """
        self.store = store if store is not None else get_store()
        # Key -> (lock, number of holders and waiters)
        self._locks: Dict[Tuple, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _locked(self, key: Tuple):
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users == 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    async def get(self, model: Type[R], record_id: str) -> Optional[R]:
        item = await self.store.aget(model.namespace, record_id)
        return model.model_validate(item.value) if item else None

    async def scan(
        self, model: Type[R], filter: Optional[Dict[str, Any]] = None
    ) -> List[R]:
        """Return every record of ``model`` whose fields equal ``filter``."""
        records: List[R] = []
        offset = 0
        while True:
            items = await self.store.asearch(
                model.namespace,
                filter=_json_filter(filter),
                limit=SCAN_PAGE_SIZE,
                offset=offset,
            )
            records.extend(model.model_validate(item.value) for item in items)
            if len(items) < SCAN_PAGE_SIZE:
                return records
            offset += SCAN_PAGE_SIZE

    async def scan_one(
        self, model: Type[R], filter: Dict[str, Any]
    ) -> Optional[R]:
        items = await self.store.asearch(
            model.namespace, filter=_json_filter(filter), limit=1
        )
        return model.model_validate(items[0].value) if items else None

    async def put(self, record: R) -> R:
        """Insert or overwrite a record by id."""
        await self.store.aput(
            type(record).namespace, record.id, record.model_dump(mode="json")
        )
        return record

    async def create(self, record: R, unique: Sequence[str] = ()) -> R:
        """Create a record, rejecting duplicates on the ``unique`` fields.

        Raises:
            DuplicateIssueError: If a record with the same unique key exists.
        """
        model = type(record)
        if not unique:
            return await self.put(record)

        key_filter = {field: getattr(record, field) for field in unique}
        lock_key = (model.namespace, *(_json_filter(key_filter).items()))
        async with self._locked(lock_key):
            existing = await self.scan_one(model, key_filter)
            if existing is not None:
                raise DuplicateIssueError(
                    f"{model.__name__} {key_filter} already exists "
                    f"with id {existing.id}"
                )
            return await self.put(record)

    async def update(
        self, model: Type[R], record_id: str, patch: Dict[str, Any]
    ) -> R:
        """Apply ``patch`` to a stored record and stamp ``updated_at``.

        Raises:
            NotFoundError: If no record has ``record_id``.
        """
        current = await self.get(model, record_id)
        if current is None:
            raise NotFoundError(f"{model.__name__} {record_id} not found")

        updated = model.model_validate(
            {**current.model_dump(), **patch, "updated_at": utcnow()}
        )
        return await self.put(updated)

    async def remove(self, model: Type[R], filter: Dict[str, Any]) -> int:
        """Delete every record matching ``filter``; returns how many."""
        records = await self.scan(model, filter)
        for record in records:
            await self.store.adelete(model.namespace, record.id)
        if records:
            logger.debug(f"Removed {len(records)} {model.__name__} record(s) {filter}")
        return len(records)
