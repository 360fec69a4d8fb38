"""
store/write_queue.py - Serialized write queue for the SQL store

SQLite accepts one writer at a time. Every mutating operation of a process is
submitted here and executed strictly in submission order, one at a time.
Operations that fail because the database is busy or locked are retried with
a linear backoff; any other failure is handed straight back to the caller.

Reads do not go through the queue.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Optional, TypeVar

from ..errors import TRANSIENT_LOCK_MESSAGES, POSInventoryError, QueueFullError, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class QueueState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class QueuedOperation:
    operation: Callable[[], Awaitable[Any]]
    future: "asyncio.Future[Any]"
    sequence: int


def is_transient_error(error: BaseException) -> bool:
    """True for busy/locked store failures that are worth retrying."""
    if isinstance(error, TransientStoreError):
        return True
    if isinstance(error, POSInventoryError):
        return False
    message = str(error)
    return any(text in message for text in TRANSIENT_LOCK_MESSAGES)


class WriteQueueManager:
    """
    FIFO executor for write operations against one store.

    One instance is created per store connection and passed to whoever needs
    to write. The drain loop is started by the first ``enqueue`` while idle
    and stops once the pending list is empty; at most one drain loop runs per
    instance.

    Args:
        max_retries: Total attempts per operation for transient failures
        retry_delay: Base backoff in seconds; attempt N waits ``retry_delay * N``
        max_pending: Optional cap on operations waiting to run
        name: Label used in log messages
    """

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 0.1,
        max_pending: Optional[int] = None,
        name: str = "default",
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_pending = max_pending
        self.name = name

        self._pending: Deque[QueuedOperation] = deque()
        self._processing = False
        self._drain_task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._sequence = 0

    @property
    def state(self) -> QueueState:
        return QueueState.DRAINING if self._processing else QueueState.IDLE

    @property
    def pending(self) -> int:
        """Number of operations waiting to start."""
        return len(self._pending)

    async def enqueue(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Submit a write operation and wait for its outcome.

        Args:
            operation: Zero-argument coroutine function performing the write

        Returns:
            Whatever the operation returns

        Raises:
            QueueFullError: If ``max_pending`` operations are already waiting
            Exception: The operation's own error, after retries for transient ones
        """
        if self.max_pending is not None and len(self._pending) >= self.max_pending:
            raise QueueFullError(
                f"Write queue '{self.name}' has {len(self._pending)} pending operations"
            )

        future = asyncio.get_running_loop().create_future()
        self._sequence += 1
        self._pending.append(QueuedOperation(operation, future, self._sequence))

        if not self._processing:
            self._processing = True
            self._idle.clear()
            self._drain_task = asyncio.create_task(self._process_queue())

        return await future

    async def wait_idle(self) -> None:
        """Wait until every submitted operation has finished."""
        await self._idle.wait()

    async def _process_queue(self) -> None:
        logger.debug(f"Write queue '{self.name}' draining")
        drain_task = asyncio.current_task()
        try:
            while self._pending:
                item = self._pending.popleft()
                try:
                    result = await self._execute_with_retry(item)
                except asyncio.CancelledError:
                    item.future.cancel()
                    if drain_task.cancelling():
                        self._cancel_pending()
                        raise
                    # The operation cancelled itself; the queue keeps draining
                    logger.warning(f"Write #{item.sequence} was cancelled")
                except (KeyboardInterrupt, SystemExit):
                    item.future.cancel()
                    self._cancel_pending()
                    raise
                except Exception as e:
                    # Submitter stopped waiting; nobody left to report to
                    if not item.future.done():
                        item.future.set_exception(e)
                else:
                    if not item.future.done():
                        item.future.set_result(result)
        finally:
            self._processing = False
            self._drain_task = None
            self._idle.set()
            logger.debug(f"Write queue '{self.name}' idle")

    def _cancel_pending(self) -> None:
        if self._pending:
            logger.warning(f"Write queue '{self.name}' stopped with {len(self._pending)} operations pending")
        while self._pending:
            self._pending.popleft().future.cancel()

    async def _execute_with_retry(self, item: QueuedOperation) -> Any:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await item.operation()
            except Exception as e:
                if not is_transient_error(e):
                    raise
                last_error = e
                if attempt < self.max_retries:
                    delay = self.retry_delay * attempt
                    logger.warning(
                        f"Write #{item.sequence} hit a busy store "
                        f"(attempt {attempt}/{self.max_retries}), retrying in {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)

        logger.error(f"Write #{item.sequence} failed after {self.max_retries} attempts: {last_error}")
        raise last_error
