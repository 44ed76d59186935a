"""Tests for the simulated nested transaction state machine."""

import pytest

from sqlbridge.db.connection import Connection
from sqlbridge.db.transactions import (
    COMMIT_SQL,
    ISOLATION_LEVEL_CLAUSES,
    ROLLBACK_SQL,
    START_TRANSACTION_SQL,
    IsolationLevel,
    TransactionState,
)
from sqlbridge.exceptions import (
    ConnectionClosedError,
    InvalidIsolationLevelError,
    NoActiveTransactionError,
)


class TestIsolationLevel:
    """Isolation level parsing and wire clauses."""

    @pytest.mark.parametrize("value,expected", [
        ("READ_COMMITTED", IsolationLevel.READ_COMMITTED),
        ("read committed", IsolationLevel.READ_COMMITTED),
        ("Serializable", IsolationLevel.SERIALIZABLE),
        (IsolationLevel.SNAPSHOT, IsolationLevel.SNAPSHOT),
    ])
    def test_parse(self, value, expected):
        assert IsolationLevel.parse(value) is expected

    @pytest.mark.parametrize("value", ["CHAOS", "", 3, None])
    def test_parse_rejects_unknown_levels(self, value):
        with pytest.raises(InvalidIsolationLevelError) as exc_info:
            IsolationLevel.parse(value)
        assert "is not an allowed isolation level" in str(exc_info.value)

    def test_clauses(self):
        assert ISOLATION_LEVEL_CLAUSES[IsolationLevel.READ_UNCOMMITTED] == "READ UNCOMMITTED"
        assert ISOLATION_LEVEL_CLAUSES[IsolationLevel.READ_COMMITTED] == "READ COMMITTED"
        assert ISOLATION_LEVEL_CLAUSES[IsolationLevel.REPEATABLE_READ] == "REPEATABLE READ"
        assert ISOLATION_LEVEL_CLAUSES[IsolationLevel.SNAPSHOT] == "SERIALIZABLE"
        assert ISOLATION_LEVEL_CLAUSES[IsolationLevel.SERIALIZABLE] == "SERIALIZABLE"

    def test_clauses_are_read_only(self):
        with pytest.raises(TypeError):
            ISOLATION_LEVEL_CLAUSES[IsolationLevel.SNAPSHOT] = "SNAPSHOT"


class TestSetIsolationLevel:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("level", list(IsolationLevel))
    async def test_issues_set_command_once(self, open_connection, fake_engine, level):
        await open_connection.set_transaction_isolation_level(level)
        await open_connection.set_transaction_isolation_level(level)

        expected = f"SET TRANSACTION ISOLATION LEVEL {ISOLATION_LEVEL_CLAUSES[level]}"
        assert fake_engine.executed == [expected]
        assert open_connection.transaction.isolation_level is level

    @pytest.mark.asyncio
    async def test_changing_level_issues_new_command(self, open_connection, fake_engine):
        await open_connection.set_transaction_isolation_level("READ_COMMITTED")
        await open_connection.set_transaction_isolation_level("SERIALIZABLE")

        assert fake_engine.executed == [
            "SET TRANSACTION ISOLATION LEVEL READ COMMITTED",
            "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE",
        ]

    @pytest.mark.asyncio
    async def test_invalid_level(self, open_connection, fake_engine):
        with pytest.raises(InvalidIsolationLevelError):
            await open_connection.set_transaction_isolation_level("EVENTUAL")
        assert fake_engine.executed == []
        assert open_connection.transaction.isolation_level is None

    @pytest.mark.asyncio
    async def test_failed_command_leaves_cache_untouched(self, open_connection, fake_engine):
        fake_engine.results["SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"] = RuntimeError("denied")

        with pytest.raises(Exception):
            await open_connection.set_transaction_isolation_level("SERIALIZABLE")
        assert open_connection.transaction.isolation_level is None


class TestTransactionNesting:

    @pytest.mark.asyncio
    async def test_begin_and_commit(self, open_connection, fake_engine):
        await open_connection.begin_transaction()
        assert open_connection.transaction.nesting_depth == 1

        await open_connection.commit()

        assert fake_engine.executed == [
            "SET TRANSACTION ISOLATION LEVEL READ COMMITTED",
            START_TRANSACTION_SQL,
            COMMIT_SQL,
        ]
        assert open_connection.transaction.nesting_depth == 0

    @pytest.mark.asyncio
    async def test_nested_begin_issues_no_sql(self, open_connection, fake_engine):
        await open_connection.begin_transaction()
        await open_connection.begin_transaction()
        await open_connection.begin_transaction("SERIALIZABLE")

        assert open_connection.transaction.nesting_depth == 3
        assert fake_engine.executed.count(START_TRANSACTION_SQL) == 1
        assert "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE" not in fake_engine.executed

    @pytest.mark.asyncio
    async def test_only_outer_commit_reaches_server(self, open_connection, fake_engine):
        await open_connection.begin_transaction()
        await open_connection.begin_transaction()
        await open_connection.commit()

        assert COMMIT_SQL not in fake_engine.executed
        assert open_connection.transaction.nesting_depth == 1

        await open_connection.commit()
        assert fake_engine.executed[-1] == COMMIT_SQL
        assert open_connection.transaction.nesting_depth == 0

    @pytest.mark.asyncio
    async def test_inner_rollback_poisons_outer_commit(self, open_connection, fake_engine):
        await open_connection.begin_transaction()
        await open_connection.begin_transaction()
        await open_connection.rollback()

        assert open_connection.transaction.pending_rollback is True
        assert ROLLBACK_SQL not in fake_engine.executed

        await open_connection.commit()

        assert COMMIT_SQL not in fake_engine.executed
        assert fake_engine.executed[-1] == ROLLBACK_SQL
        assert open_connection.transaction.nesting_depth == 0
        assert open_connection.transaction.pending_rollback is False

    @pytest.mark.asyncio
    async def test_new_transaction_clears_pending_rollback(self, open_connection, fake_engine):
        await open_connection.begin_transaction()
        await open_connection.begin_transaction()
        await open_connection.rollback()
        await open_connection.rollback()

        await open_connection.begin_transaction()
        await open_connection.commit()

        assert fake_engine.executed[-1] == COMMIT_SQL

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["commit", "rollback"])
    async def test_end_without_transaction(self, open_connection, fake_engine, operation):
        with pytest.raises(NoActiveTransactionError):
            await getattr(open_connection, operation)()
        assert fake_engine.executed == []
        assert open_connection.transaction.nesting_depth == 0

    @pytest.mark.asyncio
    async def test_depth_follows_net_begins(self, open_connection):
        sequence = ["begin", "begin", "commit", "begin", "rollback", "commit", "commit", "rollback"]
        depth = 0
        for step in sequence:
            if step == "begin":
                await open_connection.begin_transaction()
                depth += 1
            elif depth == 0:
                with pytest.raises(NoActiveTransactionError):
                    await getattr(open_connection, step)()
            else:
                await getattr(open_connection, step)()
                depth -= 1
            assert open_connection.transaction.nesting_depth == depth
            assert open_connection.transaction.nesting_depth >= 0

    @pytest.mark.asyncio
    async def test_failed_start_leaves_depth_at_zero(self, open_connection, fake_engine):
        fake_engine.results[START_TRANSACTION_SQL] = RuntimeError("lock wait timeout")

        with pytest.raises(Exception):
            await open_connection.begin_transaction()
        assert open_connection.transaction.nesting_depth == 0


class TestClosedConnection:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation,args", [
        ("begin_transaction", ()),
        ("commit", ()),
        ("rollback", ()),
        ("set_transaction_isolation_level", ("READ_COMMITTED",)),
    ])
    async def test_never_opened(self, connection, fake_engine, operation, args):
        with pytest.raises(ConnectionClosedError):
            await getattr(connection, operation)(*args)
        assert fake_engine.executed == []

    @pytest.mark.asyncio
    async def test_closed_after_use(self, open_connection, fake_engine):
        await open_connection.begin_transaction()
        await open_connection.close()
        executed = list(fake_engine.executed)

        with pytest.raises(ConnectionClosedError):
            await open_connection.commit()
        assert fake_engine.executed == executed

    @pytest.mark.asyncio
    async def test_close_resets_state(self, open_connection):
        await open_connection.begin_transaction("SERIALIZABLE")
        await open_connection.close()

        assert open_connection.transaction == TransactionState()


class TestTransactionScope:

    @pytest.mark.asyncio
    async def test_commits_on_success(self, open_connection, fake_engine):
        async with open_connection.transaction_scope():
            await open_connection.update_batch("UPDATE stock SET qty=qty-1")

        assert fake_engine.executed[-2:] == ["UPDATE stock SET qty=qty-1", COMMIT_SQL]

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, open_connection, fake_engine):
        with pytest.raises(ValueError):
            async with open_connection.transaction_scope():
                raise ValueError("boom")

        assert fake_engine.executed[-1] == ROLLBACK_SQL
        assert open_connection.transaction.nesting_depth == 0

    @pytest.mark.asyncio
    async def test_failing_inner_scope_rolls_back_outer(self, open_connection, fake_engine):
        async with open_connection.transaction_scope():
            with pytest.raises(ValueError):
                async with open_connection.transaction_scope():
                    raise ValueError("inner")

        assert COMMIT_SQL not in fake_engine.executed
        assert fake_engine.executed[-1] == ROLLBACK_SQL


class TestDefaultIsolationLevel:

    @pytest.mark.asyncio
    async def test_connection_default_is_used(self, mysql_config, fake_engine):
        connection = Connection(mysql_config, fake_engine, default_isolation_level="SERIALIZABLE")
        await connection.open()
        await connection.begin_transaction()

        assert fake_engine.executed[0] == "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE"

    @pytest.mark.asyncio
    async def test_explicit_level_wins(self, mysql_config, fake_engine):
        connection = Connection(mysql_config, fake_engine, default_isolation_level="SERIALIZABLE")
        await connection.open()
        async with connection.transaction_scope("READ_UNCOMMITTED"):
            pass

        assert fake_engine.executed[0] == "SET TRANSACTION ISOLATION LEVEL READ UNCOMMITTED"

    def test_invalid_default(self, mysql_config, fake_engine):
        with pytest.raises(InvalidIsolationLevelError):
            Connection(mysql_config, fake_engine, default_isolation_level="CHAOS")
