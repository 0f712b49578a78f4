"""
Query engine interface.

The batch orchestrator talks to any engine through this interface. An
engine resolves table references through the shared TableRegistry and
reports query problems in QueryResult.error instead of raising.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List

import pyarrow as pa


@dataclass
class ResultColumn:
    """A result column with the engine's underlying type."""
    name: str
    data_type: pa.DataType


@dataclass
class QueryResult:
    """Outcome of one query. An empty error string means success."""
    error: str = ""
    row_count: int = 0
    columns: List[ResultColumn] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error == ""

    @classmethod
    def failed(cls, error: str) -> "QueryResult":
        return cls(error=error or "Unknown query error")


class QueryEngine(ABC):
    """
    Abstract base class for query engines.

    run_query may be implemented as a plain method or as a coroutine;
    the orchestrator runs plain methods in a worker thread.
    """

    @abstractmethod
    def run_query(self, text: str) -> QueryResult:
        """
        Execute a query.

        Args:
            text: Query text

        Returns:
            QueryResult with columns and rows, or with error set
        """
        pass
