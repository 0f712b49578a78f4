"""
In-memory table registry.

One registry is constructed per server process and handed to both the
ingestion path (writer) and the query engine (reader).
"""

import logging
import threading
from typing import Dict, List, Optional

from kqlmock.ingest.table_builder import Table

logger = logging.getLogger(__name__)


class TableRegistry:
    """Thread-safe store of named tables."""

    def __init__(self):
        self._tables: Dict[str, Table] = {}
        self._lock = threading.Lock()

    def add_table(self, table: Table) -> None:
        """Register a table, replacing any table with the same name."""
        with self._lock:
            replaced = table.name in self._tables
            self._tables[table.name] = table

        if replaced:
            logger.warning(f"Replaced existing table '{table.name}'")

    def get_table(self, name: str) -> Optional[Table]:
        with self._lock:
            return self._tables.get(name)

    def snapshot(self) -> Dict[str, Table]:
        """Copy of the current name -> table mapping."""
        with self._lock:
            return dict(self._tables)

    def table_names(self) -> List[str]:
        with self._lock:
            return list(self._tables)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._tables

    def __len__(self) -> int:
        with self._lock:
            return len(self._tables)

    def clear(self) -> None:
        """Drop all tables (used on shutdown)."""
        with self._lock:
            self._tables.clear()
