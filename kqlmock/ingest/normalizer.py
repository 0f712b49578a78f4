"""
JSON value normalization.

Converts one decoded JSON value into the scalar it is stored as in a
table cell. Objects and arrays are kept whole as opaque documents.
"""

import json
from dataclasses import dataclass
from typing import Any, Union

import pyarrow as pa

from kqlmock.ingest.errors import UnsupportedNumber, UnsupportedType

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

DYNAMIC_DATA_TYPE = pa.json_()


@dataclass(frozen=True)
class OpaqueDocument:
    """A JSON object or array stored without type decomposition."""
    value: Any
    raw: str

    @classmethod
    def from_value(cls, value: Any) -> "OpaqueDocument":
        return cls(
            value=value,
            raw=json.dumps(value, ensure_ascii=False, separators=(",", ":")),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OpaqueDocument):
            return NotImplemented
        return self.raw == other.raw

    def __hash__(self) -> int:
        return hash(self.raw)


NormalizedValue = Union[None, bool, int, float, str, OpaqueDocument]


def _normalize_int(value: int) -> Union[int, float]:
    if INT32_MIN <= value <= INT32_MAX:
        return value
    try:
        return float(value)
    except OverflowError:
        raise UnsupportedNumber(f"Unsupported number: {value}")


def normalize(value: Any) -> NormalizedValue:
    """
    Normalize a single JSON value.

    Args:
        value: Value as produced by json.loads

    Returns:
        str, bool, int (32-bit range), float, None or OpaqueDocument

    Raises:
        UnsupportedNumber: If an integer cannot be held as int32 or float
        UnsupportedType: If the value is not a JSON kind
    """
    if value is None:
        return None
    elif isinstance(value, str):
        return value
    # bool is a subclass of int
    elif isinstance(value, bool):
        return value
    elif isinstance(value, int):
        return _normalize_int(value)
    elif isinstance(value, float):
        return value
    elif isinstance(value, (dict, list)):
        return OpaqueDocument.from_value(value)

    raise UnsupportedType(f"Unsupported type: {type(value).__name__}")


def value_data_type(value: NormalizedValue) -> pa.DataType:
    """Arrow type of a normalized value."""
    if value is None:
        return pa.null()
    elif isinstance(value, OpaqueDocument):
        return DYNAMIC_DATA_TYPE
    elif isinstance(value, str):
        return pa.string()
    elif isinstance(value, bool):
        return pa.bool_()
    elif isinstance(value, int):
        return pa.int32()
    elif isinstance(value, float):
        return pa.float64()

    raise UnsupportedType(f"Unsupported type: {type(value).__name__}")
