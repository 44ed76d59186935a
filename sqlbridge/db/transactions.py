"""Transaction state machine with simulated nesting over a single physical transaction.

MySQL transactions do not nest. Nested ``begin_transaction`` calls are
counted instead: only the outermost begin, commit and rollback reach the
server. An inner rollback marks the whole transaction for rollback, so the
outer commit rolls back instead.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import AsyncIterator, Callable, Mapping, Optional, Union

from sqlbridge.db.streaming import ResultStreamer
from sqlbridge.exceptions import (
    ConnectionClosedError,
    InvalidIsolationLevelError,
    NoActiveTransactionError,
)

logger = logging.getLogger(__name__)

START_TRANSACTION_SQL = "START TRANSACTION"
COMMIT_SQL = "COMMIT"
ROLLBACK_SQL = "ROLLBACK"
SET_ISOLATION_LEVEL_SQL = "SET TRANSACTION ISOLATION LEVEL {clause}"


class IsolationLevel(str, Enum):
    """Transaction isolation levels."""
    READ_UNCOMMITTED = "READ_UNCOMMITTED"
    READ_COMMITTED = "READ_COMMITTED"
    REPEATABLE_READ = "REPEATABLE_READ"
    SNAPSHOT = "SNAPSHOT"
    SERIALIZABLE = "SERIALIZABLE"

    @classmethod
    def parse(cls, value: Union["IsolationLevel", str]) -> "IsolationLevel":
        """Accept a member or a level name such as ``"read committed"``.

        Raises:
            InvalidIsolationLevelError: If ``value`` names no known level.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace(' ', '_')
            if key in cls.__members__:
                return cls[key]
        raise InvalidIsolationLevelError(value)


# MySQL has no snapshot isolation; SERIALIZABLE is the closest guarantee.
ISOLATION_LEVEL_CLAUSES: Mapping[IsolationLevel, str] = MappingProxyType({
    IsolationLevel.READ_UNCOMMITTED: "READ UNCOMMITTED",
    IsolationLevel.READ_COMMITTED: "READ COMMITTED",
    IsolationLevel.REPEATABLE_READ: "REPEATABLE READ",
    IsolationLevel.SNAPSHOT: "SERIALIZABLE",
    IsolationLevel.SERIALIZABLE: "SERIALIZABLE",
})


@dataclass
class TransactionState:
    """Nesting depth, cached isolation level and rollback-pending flag of a connection."""
    nesting_depth: int = 0
    isolation_level: Optional[IsolationLevel] = None
    pending_rollback: bool = False

    @property
    def is_active(self) -> bool:
        return self.nesting_depth > 0

    def reset(self) -> None:
        self.nesting_depth = 0
        self.isolation_level = None
        self.pending_rollback = False


class TransactionController:
    """Issues transaction commands for one connection and tracks its state.

    Args:
        streamer: Streamer bound to the connection's engine handle.
        state: The connection's TransactionState; only this controller mutates it.
        is_open: Returns whether the owning connection is open.
        default_isolation_level: Level used when a transaction names none.
    """

    def __init__(
        self,
        streamer: ResultStreamer,
        state: TransactionState,
        is_open: Callable[[], bool],
        default_isolation_level: Union[IsolationLevel, str] = IsolationLevel.READ_COMMITTED,
    ) -> None:
        self.streamer = streamer
        self.state = state
        self._is_open = is_open
        self.default_isolation_level = IsolationLevel.parse(default_isolation_level)

    def _ensure_open(self, action: str) -> None:
        if not self._is_open():
            raise ConnectionClosedError(f"Cannot {action} on a closed connection")

    async def set_isolation_level(self, level: Union[IsolationLevel, str]) -> None:
        """Set the isolation level of the next transactions.

        The level is cached; asking again for the current level sends nothing.
        """
        self._ensure_open("set transaction isolation level")
        isolation_level = IsolationLevel.parse(level)
        if self.state.isolation_level == isolation_level:
            return

        clause = ISOLATION_LEVEL_CLAUSES[isolation_level]
        await self.streamer.query_batch(SET_ISOLATION_LEVEL_SQL.format(clause=clause))
        self.state.isolation_level = isolation_level
        logger.debug("Isolation level set to %s", isolation_level.name)

    async def begin_transaction(
        self,
        isolation_level: Optional[Union[IsolationLevel, str]] = None,
    ) -> None:
        """Begin a transaction, or enter one more nesting level of the current one.

        Without ``isolation_level`` the controller's default level is used.
        """
        self._ensure_open("beginTransaction")
        if self.state.nesting_depth > 0:
            self.state.nesting_depth += 1
            logger.debug("Nested transaction entered, depth %d", self.state.nesting_depth)
            return

        if isolation_level is None:
            isolation_level = self.default_isolation_level
        await self.set_isolation_level(isolation_level)
        await self.streamer.query_batch(START_TRANSACTION_SQL)
        self.state.nesting_depth = 1
        self.state.pending_rollback = False
        logger.debug("Transaction started")

    async def commit(self) -> None:
        """Commit the current nesting level.

        Only the outermost level reaches the server, and it rolls back
        instead when an inner level was rolled back.
        """
        self._ensure_open("commit")
        if self.state.nesting_depth > 1:
            self.state.nesting_depth -= 1
            return
        if self.state.nesting_depth == 0:
            raise NoActiveTransactionError("Trying to commit but no transaction has been open")
        if self.state.pending_rollback:
            logger.info("Commit turned into rollback: an inner transaction was rolled back")
            await self.rollback()
            return

        await self.streamer.query_batch(COMMIT_SQL)
        self.state.nesting_depth = 0
        logger.debug("Transaction committed")

    async def rollback(self) -> None:
        """Roll back the current nesting level, dooming the outer levels."""
        self._ensure_open("rollback")
        if self.state.nesting_depth > 1:
            self.state.nesting_depth -= 1
            self.state.pending_rollback = True
            return
        if self.state.nesting_depth == 0:
            raise NoActiveTransactionError("Trying to rollBack but no transaction has been open")

        await self.streamer.query_batch(ROLLBACK_SQL)
        self.state.nesting_depth = 0
        self.state.pending_rollback = False
        logger.debug("Transaction rolled back")

    @asynccontextmanager
    async def transaction(
        self,
        isolation_level: Optional[Union[IsolationLevel, str]] = None,
    ) -> AsyncIterator["TransactionController"]:
        """Run a block inside a (possibly nested) transaction.

        Commits when the block exits normally, rolls back and re-raises otherwise.
        """
        await self.begin_transaction(isolation_level)
        try:
            yield self
        except BaseException:
            await self.rollback()
            raise
        await self.commit()
