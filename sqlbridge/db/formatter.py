"""SQL literal formatting for MySQL."""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping, Optional, Protocol, Union

from sqlbridge.db.filters import Expression
from sqlbridge.exceptions import StatementError


class SqlFormatter(Protocol):
    """Value-formatting capability used by the statement builder."""

    def quote(self, value: Any, for_filter: bool = False) -> str:
        ...

    def condition_to_sql(
        self,
        condition: Union[Expression, str],
        environment: Optional[Mapping[str, Any]] = None,
    ) -> str:
        ...


class MySqlFormatter:
    """Renders Python values as MySQL literals."""

    def quote(self, value: Any, for_filter: bool = False) -> str:
        """Return ``value`` as a SQL literal.

        Args:
            value: Python value to render.
            for_filter: Render for a WHERE clause; booleans become ``1``/``0``
                instead of ``true``/``false``.
        """
        if value is None:
            return 'null'
        if isinstance(value, bool):
            if for_filter:
                return '1' if value else '0'
            return 'true' if value else 'false'
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, datetime):
            fmt = '%Y-%m-%d %H:%M:%S.%f' if value.microsecond else '%Y-%m-%d %H:%M:%S'
            return f"'{value.strftime(fmt)}'"
        if isinstance(value, date):
            return f"'{value.strftime('%Y-%m-%d')}'"
        if isinstance(value, time):
            return f"'{value.isoformat()}'"
        if isinstance(value, (bytes, bytearray)):
            return '0x' + bytes(value).hex()
        if isinstance(value, str):
            escaped = value.replace('\\', '\\\\').replace("'", "''")
            return f"'{escaped}'"
        raise StatementError(f"Cannot format value of type {type(value).__name__} as SQL literal")

    def condition_to_sql(
        self,
        condition: Union[Expression, str],
        environment: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Render a filter expression; plain strings are taken as SQL already."""
        if isinstance(condition, str):
            return condition
        return condition.to_sql(self, environment)
