"""
Table builder with schema inference.

Turns a batch of JSON records into a single typed, columnar table. The
column set, column order and column types all come from the first record
of the batch.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pyarrow as pa

from kqlmock.ingest.errors import SchemaError
from kqlmock.ingest.normalizer import NormalizedValue, normalize, value_data_type
from kqlmock.ingest.type_mapper import WireType, wire_type

logger = logging.getLogger(__name__)


class ColumnTypePolicy(str, Enum):
    """How later records are checked against the first record's types."""
    FIRST_RECORD = "first_record"  # accept any kind after the first row
    STRICT = "strict"  # reject non-null values of a different kind


@dataclass(frozen=True)
class Column:
    """A typed table column."""
    name: str
    wire_type: WireType
    data_type: pa.DataType


@dataclass(frozen=True)
class Table:
    """An immutable table of positionally aligned rows."""
    name: str
    columns: Tuple[Column, ...]
    rows: Tuple[Tuple[NormalizedValue, ...], ...]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def column_values(self, index: int) -> List[NormalizedValue]:
        """All values of one column, in row order."""
        return [row[index] for row in self.rows]


class TableBuilder:
    """
    Builds typed tables from heterogeneous JSON records.

    Every record must carry every key of the first record. Keys that only
    appear in later records are ignored.
    """

    def __init__(self, policy: ColumnTypePolicy = ColumnTypePolicy.FIRST_RECORD):
        """
        Initialize builder.

        Args:
            policy: Type checking applied to records after the first
        """
        self.policy = ColumnTypePolicy(policy)

    def build(
        self,
        table_name: str,
        records: Sequence[Dict[str, Any]],
    ) -> Optional[Table]:
        """
        Build a table from a batch of records.

        Args:
            table_name: Name of the table to build
            records: JSON objects, in ingestion order

        Returns:
            The built Table, or None when records is empty

        Raises:
            SchemaError: If a record is not an object or lacks a field
            UnsupportedType: If a value has no wire type
            UnsupportedNumber: If a number cannot be represented
        """
        if not records:
            return None

        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise SchemaError(
                    f"Record {index} is not a JSON object")

        columns: List[Column] = []
        values: List[List[NormalizedValue]] = []

        for key, first_value in records[0].items():
            data_type = value_data_type(normalize(first_value))
            column = Column(
                name=key,
                wire_type=wire_type(data_type),
                data_type=data_type,
            )
            columns.append(column)
            values.append(self._column_values(column, records))

        logger.debug(
            f"Built table '{table_name}' with {len(columns)} columns "
            f"and {len(records)} rows")

        return Table(
            name=table_name,
            columns=tuple(columns),
            rows=tuple(zip(*values)) if columns else tuple(
                () for _ in records),
        )

    def _column_values(
        self,
        column: Column,
        records: Sequence[Dict[str, Any]],
    ) -> List[NormalizedValue]:
        """Collect and normalize one column across all records."""
        column_values: List[NormalizedValue] = []

        for record in records:
            if column.name not in record:
                raise SchemaError(f"missing field {column.name}")

            value = normalize(record[column.name])
            if self.policy == ColumnTypePolicy.STRICT:
                self._check_type(column, value)
            column_values.append(value)

        return column_values

    def _check_type(self, column: Column, value: NormalizedValue) -> None:
        if value is None:
            return
        data_type = value_data_type(value)
        if not data_type.equals(column.data_type):
            raise SchemaError(
                f"field {column.name} holds {data_type}, "
                f"expected {column.data_type}")
