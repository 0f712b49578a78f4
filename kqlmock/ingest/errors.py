"""Exceptions raised while turning JSON records into typed tables."""


class IngestError(Exception):
    """Base class for rejected ingestion input."""
    pass


class UnsupportedType(IngestError):
    """A value or runtime type has no wire type."""
    pass


class UnsupportedNumber(IngestError):
    """A JSON number fits neither a 32-bit integer nor a double."""
    pass


class SchemaError(IngestError):
    """Records in a batch do not share the first record's fields."""
    pass
