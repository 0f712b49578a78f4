"""
Ingest module for JSON records.

Provides value normalization, wire type mapping and schema inference
for building typed tables out of JSON record batches.
"""

from kqlmock.ingest.errors import (
    IngestError,
    SchemaError,
    UnsupportedNumber,
    UnsupportedType,
)
from kqlmock.ingest.type_mapper import WireType, wire_type
from kqlmock.ingest.normalizer import OpaqueDocument, normalize, value_data_type
from kqlmock.ingest.table_builder import (
    Column,
    ColumnTypePolicy,
    Table,
    TableBuilder,
)

__all__ = [  # ruff: noqa: RUF022
    # Errors
    "IngestError",
    "SchemaError",
    "UnsupportedNumber",
    "UnsupportedType",
    # Type Mapping
    "WireType",
    "wire_type",
    # Normalization
    "OpaqueDocument",
    "normalize",
    "value_data_type",
    # Table Building
    "Column",
    "ColumnTypePolicy",
    "Table",
    "TableBuilder",
]
