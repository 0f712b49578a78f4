"""
DuckDB-backed query engine.

Executes query text with DuckDB against the tables held in a
TableRegistry. Each registered table is materialized once as an Arrow
table and registered on a fresh in-memory connection for every query, so
concurrent queries share nothing but immutable data.

Dynamic columns, and columns whose values drifted away from the first
record's type, are stored as JSON text and exposed as DuckDB JSON through
a view. Drifted columns keep their declared wire type in results.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import duckdb
import pyarrow as pa

from kqlmock.ingest.normalizer import (
    DYNAMIC_DATA_TYPE,
    NormalizedValue,
    OpaqueDocument,
    value_data_type,
)
from kqlmock.ingest.table_builder import Column, Table
from kqlmock.ingest.type_mapper import WireType
from kqlmock.query.engine import QueryEngine, QueryResult, ResultColumn
from kqlmock.query.registry import TableRegistry

logger = logging.getLogger(__name__)

# DuckDB exports these as plain strings, the names survive on relation.types
JSON_TYPE_NAME = "JSON"
UUID_TYPE_NAME = "UUID"


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _json_text(value: Any) -> Optional[str]:
    """JSON text for a cell stored in a JSON column."""
    if value is None:
        return None
    if isinstance(value, OpaqueDocument):
        return value.raw
    return json.dumps(value, ensure_ascii=False)


def _is_drifted(column: Column, values: Sequence[NormalizedValue]) -> bool:
    return any(
        value is not None and not value_data_type(value).equals(column.data_type)
        for value in values
    )


@dataclass(frozen=True, eq=False)
class MaterializedTable:
    """Arrow form of a registry table."""
    source: Table
    arrow: pa.Table
    json_columns: Tuple[str, ...] = ()
    drifted: Dict[str, pa.DataType] = field(default_factory=dict)


def materialize(table: Table) -> MaterializedTable:
    """
    Convert a registry table to Arrow without changing any value.

    Columns whose values all match the column type keep that Arrow type.
    Dynamic and drifted columns hold JSON text.
    """
    arrays = []
    json_columns = []
    drifted = {}

    for index, column in enumerate(table.columns):
        values = table.column_values(index)
        if column.wire_type != WireType.DYNAMIC and _is_drifted(column, values):
            drifted[column.name] = column.data_type

        if column.wire_type == WireType.DYNAMIC or column.name in drifted:
            json_columns.append(column.name)
            arrays.append(pa.array([_json_text(v) for v in values], pa.string()))
        else:
            arrays.append(pa.array(values, type=column.data_type))

    if drifted:
        logger.warning(
            f"Table '{table.name}' holds values that differ from their "
            f"column type in {sorted(drifted)}, exposing them as JSON")

    return MaterializedTable(
        source=table,
        arrow=pa.Table.from_arrays(arrays, names=table.column_names),
        json_columns=tuple(json_columns),
        drifted=drifted,
    )


class DuckDbQueryEngine(QueryEngine):
    """Runs SQL with DuckDB over the registry's tables."""

    def __init__(self, registry: TableRegistry):
        """
        Initialize engine.

        Args:
            registry: Registry to resolve table names against
        """
        self.registry = registry
        self._cache: Dict[str, MaterializedTable] = {}
        self._cache_lock = threading.Lock()

    def run_query(self, text: str) -> QueryResult:
        tables = self._materialized()

        conn = duckdb.connect(":memory:")
        try:
            for table in tables:
                self._register(conn, table)

            try:
                relation = conn.sql(text)
                if relation is None:
                    return QueryResult()
                type_names = [str(t) for t in relation.types]
                result = relation.to_arrow_table()
            except duckdb.Error as e:
                return QueryResult.failed(str(e))
        finally:
            conn.close()

        return self._to_query_result(result, type_names, self._declared_types(tables))

    def _materialized(self) -> List[MaterializedTable]:
        """Arrow forms of the current registry tables, converted once per table."""
        snapshot = self.registry.snapshot()
        with self._cache_lock:
            for name in list(self._cache):
                if name not in snapshot:
                    del self._cache[name]

            tables = []
            for name, table in snapshot.items():
                cached = self._cache.get(name)
                if cached is None or cached.source is not table:
                    cached = materialize(table)
                    self._cache[name] = cached
                tables.append(cached)
            return tables

    @staticmethod
    def _register(conn: duckdb.DuckDBPyConnection, table: MaterializedTable) -> None:
        """Register a table on the connection under its own name."""
        name = table.source.name
        if not table.json_columns:
            conn.register(name, table.arrow)
            return

        base_name = f"__base_{name}"
        conn.register(base_name, table.arrow)
        replacements = ", ".join(
            f"CAST({_quote(column)} AS JSON) AS {_quote(column)}"
            for column in table.json_columns
        )
        conn.execute(
            f"CREATE VIEW {_quote(name)} AS "
            f"SELECT * REPLACE ({replacements}) FROM {_quote(base_name)}"
        )

    @staticmethod
    def _declared_types(
        tables: Sequence[MaterializedTable],
    ) -> Dict[str, pa.DataType]:
        """
        Declared types of drifted columns by column name.

        A name is left out when it is ambiguous: drifted with different
        types in two tables, or also the name of a dynamic column.
        """
        declared: Dict[str, Optional[pa.DataType]] = {}
        for table in tables:
            for name in table.json_columns:
                data_type = table.drifted.get(name)
                known = declared.get(name, data_type)
                if data_type is None or known is None or not known.equals(data_type):
                    declared[name] = None
                else:
                    declared[name] = data_type
        return {name: t for name, t in declared.items() if t is not None}

    @staticmethod
    def _to_query_result(
        result: pa.Table,
        type_names: List[str],
        declared: Dict[str, pa.DataType],
    ) -> QueryResult:
        columns = []
        column_values = []

        for index, (arrow_field, type_name) in enumerate(zip(result.schema, type_names)):
            values = result.column(index).to_pylist()
            data_type = arrow_field.type

            if type_name == UUID_TYPE_NAME:
                data_type = pa.uuid()
            elif type_name == JSON_TYPE_NAME:
                data_type = declared.get(arrow_field.name, DYNAMIC_DATA_TYPE)
                if data_type is not DYNAMIC_DATA_TYPE:
                    values = [None if v is None else json.loads(v) for v in values]

            columns.append(ResultColumn(name=arrow_field.name, data_type=data_type))
            column_values.append(values)

        if column_values:
            rows: List[List[Any]] = [list(row) for row in zip(*column_values)]
        else:
            rows = [[] for _ in range(result.num_rows)]

        return QueryResult(
            error="",
            row_count=result.num_rows,
            columns=columns,
            rows=rows,
        )
