"""
Query module.

Provides the table registry, the query engine interface with its DuckDB
implementation, and the batch query orchestrator.
"""

from kqlmock.query.registry import TableRegistry
from kqlmock.query.engine import QueryEngine, QueryResult, ResultColumn
from kqlmock.query.duckdb_engine import DuckDbQueryEngine
from kqlmock.query.orchestrator import BatchQueryOrchestrator

__all__ = [  # ruff: noqa: RUF022
    "TableRegistry",
    "QueryEngine",
    "QueryResult",
    "ResultColumn",
    "DuckDbQueryEngine",
    "BatchQueryOrchestrator",
]
