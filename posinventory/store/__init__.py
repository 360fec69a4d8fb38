from .database import QueuedDatabase
from .sql_store import SQLStore, utcnow
from .write_queue import QueueState, WriteQueueManager, is_transient_error

__all__ = [
    "QueuedDatabase",
    "QueueState",
    "SQLStore",
    "WriteQueueManager",
    "is_transient_error",
    "utcnow",
]
