"""Table and view descriptions read from INFORMATION_SCHEMA."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from sqlbridge.db.formatter import MySqlFormatter, SqlFormatter
from sqlbridge.exceptions import TableNotFoundError

logger = logging.getLogger(__name__)


class QueryExecutor(Protocol):
    """Anything able to run a query and resolve with its records."""

    def query_batch(self, sql: str, raw: bool = False) -> Any:
        ...


@dataclass
class ColumnDescriptor:
    """Information about a table column."""
    name: str
    type: str
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_nullable: bool = True
    is_primary_key: bool = False

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ColumnDescriptor":
        return cls(
            name=record['name'],
            type=record['type'],
            max_length=record.get('max_length'),
            precision=record.get('precision'),
            scale=record.get('scale'),
            is_nullable=bool(record.get('is_nullable')),
            is_primary_key=bool(record.get('pk')),
        )


@dataclass
class TableDescriptor:
    """Structure of a table (kind ``T``) or view (kind ``V``)."""
    name: str
    kind: str
    is_dbo: bool = True
    columns: List[ColumnDescriptor] = field(default_factory=list)

    @property
    def primary_key(self) -> List[str]:
        return [c.name for c in self.columns if c.is_primary_key]

    def column(self, name: str) -> Optional[ColumnDescriptor]:
        for column in self.columns:
            if column.name == name:
                return column
        return None


class TableDescriber:
    """Builds TableDescriptors from the catalog of one database.

    Args:
        executor: Query capability used for the catalog lookups.
        database: Schema (MySQL database) holding the tables.
        formatter: Formatter used to quote the lookup values.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        database: Optional[str],
        formatter: Optional[SqlFormatter] = None,
    ) -> None:
        self.executor = executor
        self.database = database
        self.formatter = formatter or MySqlFormatter()

    def build_query(self, table_name: str) -> str:
        schema_condition = (
            f"T.table_schema={self.formatter.quote(self.database)}"
            if self.database else "T.table_schema=DATABASE()"
        )
        return (
            "select 1 as dbo, "
            "case when T.table_type='BASE TABLE' then 'U' else 'V' end as xtype, "
            "C.COLUMN_NAME as name, C.DATA_TYPE as type, C.CHARACTER_MAXIMUM_LENGTH as max_length, "
            "C.NUMERIC_PRECISION as `precision`, C.NUMERIC_SCALE as scale, "
            "case when C.IS_NULLABLE = 'YES' then 1 else 0 end as is_nullable, "
            "case when C.COLUMN_KEY='PRI' then 1 else 0 end as pk "
            "from INFORMATION_SCHEMA.tables T "
            "JOIN INFORMATION_SCHEMA.columns C "
            "ON C.table_schema=T.table_schema and C.table_name=T.table_name "
            f"where {schema_condition} and T.table_name={self.formatter.quote(table_name)} "
            "order by C.ORDINAL_POSITION"
        )

    async def describe(self, table_name: str) -> TableDescriptor:
        """Describe ``table_name``.

        Raises:
            TableNotFoundError: If the catalog has no such table or view.
        """
        records = await self.executor.query_batch(self.build_query(table_name))
        if not records:
            raise TableNotFoundError(
                f"Table named {table_name} does not exist in {self.database}",
                table_name=table_name,
            )

        first = records[0]
        kind = 'T' if str(first['xtype']).strip() == 'U' else 'V'
        columns = [ColumnDescriptor.from_record(record) for record in records]
        logger.debug("Described %s (%s) with %d column(s)", table_name, kind, len(columns))
        return TableDescriptor(
            name=table_name,
            kind=kind,
            is_dbo=first.get('dbo', 0) != 0,
            columns=columns,
        )
