"""
Wire type mapping.

Maps the Arrow runtime type of a column (built from ingested JSON or
returned by the query engine) onto the closed set of type names the
query service exposes in column descriptors.
"""

from enum import Enum

import pyarrow as pa

from kqlmock.ingest.errors import UnsupportedType


class WireType(str, Enum):
    """Column type names as they appear on the wire."""
    STRING = "string"
    INT = "int"
    LONG = "long"
    REAL = "real"
    DECIMAL = "decimal"
    DATETIME = "datetime"
    TIMESPAN = "timespan"
    BOOL = "bool"
    GUID = "guid"
    DYNAMIC = "dynamic"


def _is_structured(data_type: pa.DataType) -> bool:
    return (
        pa.types.is_list(data_type)
        or pa.types.is_large_list(data_type)
        or pa.types.is_fixed_size_list(data_type)
        or pa.types.is_struct(data_type)
        or pa.types.is_map(data_type)
    )


def wire_type(data_type: pa.DataType) -> WireType:
    """
    Get the wire type for an Arrow data type.

    Args:
        data_type: Arrow type of a column

    Returns:
        WireType enum value

    Raises:
        UnsupportedType: If the type has no wire representation
    """
    if data_type is None:
        raise UnsupportedType("Unsupported type: None")

    # Extension types first, their storage types would match below
    if isinstance(data_type, pa.JsonType):
        return WireType.DYNAMIC
    if isinstance(data_type, pa.UuidType):
        return WireType.GUID

    if (
        pa.types.is_string(data_type)
        or pa.types.is_large_string(data_type)
        or pa.types.is_string_view(data_type)
    ):
        return WireType.STRING
    elif pa.types.is_int32(data_type):
        return WireType.INT
    elif pa.types.is_int64(data_type):
        return WireType.LONG
    elif pa.types.is_float64(data_type):
        return WireType.REAL
    elif pa.types.is_decimal(data_type):
        return WireType.DECIMAL
    elif pa.types.is_timestamp(data_type) or pa.types.is_date(data_type):
        return WireType.DATETIME
    elif pa.types.is_duration(data_type) or pa.types.is_interval(data_type):
        return WireType.TIMESPAN
    elif pa.types.is_boolean(data_type):
        return WireType.BOOL
    elif _is_structured(data_type):
        return WireType.DYNAMIC

    raise UnsupportedType(f"Unsupported type: {data_type}")
