"""Streaming delivery of engine results: batched, row-by-row and packeted."""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlbridge.db.engine import ExecutionEngine, Packet, objectify, objectify_row
from sqlbridge.exceptions import EngineExecutionError

logger = logging.getLogger(__name__)

Notify = Callable[[Any], None]
Producer = Callable[[Notify], Awaitable[Any]]

_DONE = object()


class ResultStream:
    """An asynchronous operation that may notify progress before its single outcome.

    Awaiting the stream returns the final value or raises the failure.
    Iterating it with ``async for`` yields each progress notification in
    order and then raises the failure, if any. The producer starts on the
    first await or iteration and runs exactly once.

    Notifications are only buffered for an ``async for`` consumer, which
    must start iterating before the stream is awaited. Listeners registered
    with ``on_progress`` see each notification as it happens.
    """

    def __init__(self, producer: Producer, description: str = "") -> None:
        self._producer = producer
        self.description = description
        self._listeners: List[Notify] = []
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Future] = None
        self._iterated = False

    def on_progress(self, callback: Notify) -> "ResultStream":
        """Register a callback invoked synchronously for every notification."""
        self._listeners.append(callback)
        return self

    def start(self) -> asyncio.Future:
        """Schedule the producer if it is not running yet and return its task."""
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        return self._task

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def _run(self) -> Any:
        try:
            return await self._producer(self._notify)
        finally:
            if self._queue is not None:
                self._queue.put_nowait(_DONE)

    def _notify(self, payload: Any) -> None:
        for listener in self._listeners:
            listener(payload)
        if self._queue is not None:
            self._queue.put_nowait(payload)

    def __await__(self):
        return self.start().__await__()

    def __aiter__(self) -> AsyncIterator[Any]:
        if self._iterated:
            raise RuntimeError(f"Progress of '{self.description}' can only be iterated once")
        if self._task is not None:
            raise RuntimeError(f"Progress of '{self.description}' must be iterated before it is awaited")
        self._iterated = True
        self._queue = asyncio.Queue()
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        task = self.start()
        while True:
            item = await self._queue.get()
            if item is _DONE:
                break
            yield item
        await task

    async def collect(self) -> Tuple[List[Any], Any]:
        """Run to completion and return ``(notifications, result)``."""
        notifications = [item async for item in self]
        return notifications, await self.start()


class ResultStreamer:
    """Normalizes the engine's packet stream into client-facing delivery modes.

    Args:
        engine: Execution engine running the SQL text.
        handle_provider: Returns the open engine handle; raises
            ConnectionClosedError when the owning connection is not open.
    """

    def __init__(self, engine: ExecutionEngine, handle_provider: Callable[[], Any]) -> None:
        self.engine = engine
        self._handle_provider = handle_provider

    @staticmethod
    def _engine_error(error: Exception, sql: str) -> EngineExecutionError:
        if isinstance(error, EngineExecutionError):
            return error
        return EngineExecutionError(f"{error} running {sql}", sql=sql)

    def query_batch(self, sql: str, raw: bool = False) -> ResultStream:
        """Execute ``sql`` and resolve with its last result set.

        Every earlier result set is delivered as a progress notification.
        Unless ``raw``, result sets are lists of records keyed by column name;
        raw result sets are ResultSet instances.
        """
        async def produce(notify: Notify) -> Any:
            handle = self._handle_provider()
            logger.debug("query_batch: %s", sql)
            try:
                result_sets = await self.engine.query(sql, handle)
            except Exception as e:
                raise self._engine_error(e, sql) from e

            if not result_sets:
                return None if raw else []

            for result_set in result_sets[:-1]:
                notify(result_set if raw else result_set.to_records())

            last = result_sets[-1]
            return last if raw else last.to_records()

        return ResultStream(produce, description=sql)

    def query_lines(self, sql: str, raw: bool = False) -> ResultStream:
        """Execute ``sql`` delivering one row per notification.

        Notifications are ``{"meta": [columns]}`` at the start of each result
        set, then ``{"row": record}`` (``{"row": [values]}`` when ``raw``) for
        every row. Resolves with None.
        """
        async def produce(notify: Notify) -> None:
            handle = self._handle_provider()
            state: Dict[str, Any] = {'meta': None, 'failure': None, 'resolved': False}

            def on_packet(packet: Packet) -> None:
                if state['failure'] is not None or state['resolved']:
                    return
                if packet.get('resolve'):
                    state['resolved'] = True
                    return
                if 'rows' in packet:
                    if state['meta'] is None:
                        state['failure'] = EngineExecutionError(
                            f"Row received before metadata running {sql}", sql=sql
                        )
                        return
                    for row in packet['rows']:
                        if raw:
                            notify({'row': row})
                        else:
                            notify({'row': objectify_row(state['meta'], row)})
                    return
                state['meta'] = packet['meta']
                notify(packet)

            logger.debug("query_lines: %s", sql)
            try:
                await self.engine.query(sql, handle, callback=on_packet, packet_size=1)
            except Exception as e:
                raise self._engine_error(e, sql) from e
            if state['failure'] is not None:
                raise state['failure']
            return None

        return ResultStream(produce, description=sql)

    def query_packets(self, sql: str, raw: bool = False, packet_size: int = 0) -> ResultStream:
        """Execute ``sql`` delivering rows in batches of up to ``packet_size``.

        Each notification is ``{"rows": [...], "set": n}`` where ``n`` is the
        zero-based index of the statement's result set. Metadata packets are
        absorbed; when ``raw`` the batches hold value arrays and carry the
        column names under ``"meta"``. Resolves with None.
        """
        async def produce(notify: Notify) -> None:
            handle = self._handle_provider()
            state: Dict[str, Any] = {'meta': None, 'set': -1, 'failure': None, 'resolved': False}

            def on_packet(packet: Packet) -> None:
                if state['failure'] is not None or state['resolved']:
                    return
                if packet.get('resolve'):
                    state['resolved'] = True
                    return
                if 'meta' in packet:
                    state['set'] += 1
                    state['meta'] = packet['meta']
                    return
                if state['meta'] is None:
                    state['failure'] = EngineExecutionError(
                        f"Rows received before metadata running {sql}", sql=sql
                    )
                    return
                if raw:
                    notify({'rows': packet['rows'], 'set': state['set'], 'meta': state['meta']})
                else:
                    notify({'rows': objectify(state['meta'], packet['rows']), 'set': state['set']})

            logger.debug("query_packets(packet_size=%s): %s", packet_size, sql)
            try:
                await self.engine.query(sql, handle, callback=on_packet, packet_size=packet_size or 0)
            except Exception as e:
                raise self._engine_error(e, sql) from e
            if state['failure'] is not None:
                raise state['failure']
            return None

        return ResultStream(produce, description=sql)

    def update_batch(self, sql: str) -> ResultStream:
        """Execute update/insert/delete commands; resolves with the affected row count."""
        async def produce(notify: Notify) -> int:
            handle = self._handle_provider()
            logger.debug("update_batch: %s", sql)
            try:
                return await self.engine.non_query(sql, handle)
            except Exception as e:
                raise self._engine_error(e, sql) from e

        return ResultStream(produce, description=sql)
