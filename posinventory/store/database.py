"""
store/database.py - Queue-aware access to the SQL store

Reads go straight to the store. Writes and transaction batches are routed
through the write queue so they never run concurrently within the process.
"""

import logging
from typing import Any, Dict, List, Sequence

from .sql_store import Params, Query, SQLStore, Statement
from .write_queue import WriteQueueManager

logger = logging.getLogger(__name__)


class QueuedDatabase:

    def __init__(self, store: SQLStore, queue: WriteQueueManager):
        self.store = store
        self.queue = queue

    async def read(self, query: Query, params: Params = None) -> List[Dict[str, Any]]:
        return await self.store.fetch_all(query, params)

    async def write(self, query: Query, params: Params = None) -> int:
        """Queue a single write; returns the affected row count."""
        return await self.queue.enqueue(lambda: self.store.execute(query, params))

    async def transaction(self, statements: Sequence[Statement]) -> List[int]:
        """Queue a batch that is applied atomically; returns per-statement row counts."""
        statements = list(statements)
        if not statements:
            return []
        logger.debug(f"Queueing transaction of {len(statements)} statements")
        return await self.queue.enqueue(lambda: self.store.execute_batch(statements))
