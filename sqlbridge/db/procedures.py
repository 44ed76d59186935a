"""Stored procedure invocation with output parameter retrieval."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from sqlbridge.db.engine import ResultSet, objectify
from sqlbridge.db.streaming import ResultStream, ResultStreamer

if TYPE_CHECKING:
    from sqlbridge.db.statements import StatementBuilder

logger = logging.getLogger(__name__)


class _Unset:
    """Marker for an output value that has not been produced."""

    def __repr__(self) -> str:
        return 'UNSET'

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass
class SqlParameter:
    """A positional stored procedure argument.

    ``sql_type`` is the declared type of an output parameter; ``out_value``
    holds what the procedure produced and stays UNSET for input parameters.
    """
    name: Optional[str] = None
    value: Any = None
    sql_type: Optional[str] = None
    is_output: bool = False
    out_value: Any = UNSET

    @property
    def has_out_value(self) -> bool:
        return self.out_value is not UNSET


class StoredProcedureInvoker:
    """Calls stored procedures through the streamer and harvests output values."""

    def __init__(self, streamer: ResultStreamer, builder: "StatementBuilder") -> None:
        self.streamer = streamer
        self.builder = builder

    def call_sp_with_named_params(
        self,
        sp_name: str,
        params: Sequence[SqlParameter],
        raw: bool = False,
        skip_select: bool = False,
    ) -> ResultStream:
        """Call ``sp_name`` with positional ``params``.

        Result sets returned by the procedure are forwarded as progress. When
        output parameters exist, the trailing output select is read as a
        single row, each value is stored on the matching parameter's
        ``out_value`` and the stream resolves with the parameter list.
        Otherwise it resolves with the last result set.
        """
        sql = self.builder.get_call_sp_command(sp_name, params, skip_select=skip_select)
        outputs = [p for p in params if p.is_output]

        async def produce(notify) -> Any:
            inner = self.streamer.query_batch(sql, raw=raw)
            async for result in inner:
                notify(result)
            result = await inner

            if not outputs or skip_select:
                return result

            output_row = self._first_record(result)
            by_name = {p.name: p for p in outputs}
            for name, value in output_row.items():
                param = by_name.get(name)
                if param is None:
                    logger.warning("%s returned unexpected output column %s", sp_name, name)
                    continue
                param.out_value = value
            return list(params)

        return ResultStream(produce, description=sql)

    @staticmethod
    def _first_record(result: Any) -> Dict[str, Any]:
        if isinstance(result, ResultSet):
            records: List[Dict[str, Any]] = objectify(result.columns, result.rows)
        else:
            records = result or []
        return records[0] if records else {}
