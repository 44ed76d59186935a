"""SQL text generation for CRUD commands and stored procedure calls."""

from typing import Any, Mapping, Optional, Sequence, Union

from sqlbridge.db.filters import Expression
from sqlbridge.db.formatter import MySqlFormatter, SqlFormatter
from sqlbridge.db.procedures import SqlParameter
from sqlbridge.exceptions import MissingFilterError, StatementError

Filter = Optional[Union[Expression, str]]
Environment = Optional[Mapping[str, Any]]


class StatementBuilder:
    """Stateless builder of MySQL command text.

    Literal quoting and filter rendering are delegated to the formatter;
    the builder never escapes values itself.
    """

    def __init__(self, formatter: Optional[SqlFormatter] = None) -> None:
        self.formatter = formatter or MySqlFormatter()

    def _where(self, filter: Filter, environment: Environment) -> str:
        return ' WHERE ' + self.formatter.condition_to_sql(filter, environment)

    def get_select_command(
        self,
        table_name: str,
        columns: Union[str, Sequence[str]] = '*',
        filter: Filter = None,
        order_by: Optional[str] = None,
        top: Optional[Union[int, str]] = None,
        environment: Environment = None,
    ) -> str:
        """Build ``SELECT <columns> FROM <table> [WHERE] [ORDER BY] [LIMIT]``.

        An always-true filter is omitted.
        """
        if not isinstance(columns, str):
            columns = ','.join(columns)
        cmd = f"SELECT {columns} FROM {table_name}"
        if filter is not None and not getattr(filter, 'is_true', False):
            cmd += self._where(filter, environment)
        if order_by:
            cmd += f" ORDER BY {order_by}"
        if top:
            cmd += f" LIMIT {top}"
        return cmd

    def get_select_count(
        self,
        table_name: str,
        filter: Filter = None,
        environment: Environment = None,
    ) -> str:
        """Build ``SELECT count(*) FROM <table> [WHERE]``."""
        cmd = f"SELECT count(*) FROM {table_name}"
        if filter is not None:
            cmd += self._where(filter, environment)
        return cmd

    def get_delete_command(
        self,
        table_name: str,
        filter: Filter = None,
        environment: Environment = None,
    ) -> str:
        """Build ``DELETE FROM <table> WHERE <condition>``.

        Raises:
            MissingFilterError: If no filter is given; unconditional deletes are refused.
        """
        if filter is None:
            raise MissingFilterError(f"Refusing to delete from {table_name} without a filter")
        return f"DELETE FROM {table_name}" + self._where(filter, environment)

    def get_insert_command(self, table: str, columns: Sequence[str], values: Sequence[Any]) -> str:
        """Build ``INSERT INTO <table>(<cols>)VALUES(<values>)`` pairing columns and values by position."""
        if len(columns) != len(values):
            raise ValueError(
                f"Insert into {table} has {len(columns)} columns but {len(values)} values"
            )
        quoted = ','.join(self.formatter.quote(value, False) for value in values)
        return f"INSERT INTO {table}({','.join(columns)})VALUES({quoted})"

    def get_update_command(
        self,
        table: str,
        columns: Sequence[str],
        values: Sequence[Any],
        filter: Filter = None,
        environment: Environment = None,
    ) -> str:
        """Build ``UPDATE <table> SET col=val,... [WHERE <condition>]``."""
        if len(columns) != len(values):
            raise ValueError(
                f"Update of {table} has {len(columns)} columns but {len(values)} values"
            )
        assignments = ','.join(
            f"{column}={self.formatter.quote(value, False)}"
            for column, value in zip(columns, values)
        )
        cmd = f"UPDATE {table} SET {assignments}"
        if filter is not None:
            cmd += self._where(filter, environment)
        return cmd

    def get_call_sp_command(
        self,
        sp_name: str,
        params: Sequence[SqlParameter],
        skip_select: bool = False,
    ) -> str:
        """Build the CALL command for a stored procedure.

        MySQL has no named-parameter binding, so arguments are positional in
        the order given. Input parameters are rendered as literals and output
        parameters as ``@name`` user variables. Unless ``skip_select``, output
        variables are read back with a trailing ``SELECT @name AS name,...``.
        """
        arguments = []
        outputs = []
        for param in params:
            if param.is_output:
                if not param.name:
                    raise StatementError(f"Output parameter of {sp_name} needs a name")
                arguments.append(f"@{param.name}")
                outputs.append(param)
            else:
                arguments.append(self.formatter.quote(param.value))

        cmd = f"CALL {sp_name}({','.join(arguments)})"
        if outputs and not skip_select:
            cmd += ';SELECT ' + ','.join(f"@{p.name} AS {p.name}" for p in outputs)
        return cmd

    @staticmethod
    def append_commands(commands: Sequence[str]) -> str:
        """Join several commands into one batch."""
        return ';'.join(commands)

    def give_error_number_data_was_not_written(self, error_number: int) -> str:
        """Command returning ``error_number`` when the previous write touched no row."""
        return f"if (ROW_COUNT()=0) BEGIN select {self.formatter.quote(error_number)}; RETURN; END"

    def give_constant(self, value: Any) -> str:
        """Command returning a constant value."""
        return f"select {self.formatter.quote(value)};"
