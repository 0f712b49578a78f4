"""
Table ingestion service.

Entry point of the ingestion path: builds a typed table from a batch of
JSON records and hands it to the table registry.
"""

import logging
from typing import Any, Dict, Optional, Sequence

from kqlmock.common.logging_config import PerformanceTracker
from kqlmock.common.metrics import (
    ingest_requests_total,
    rows_ingested_total,
    tables_registered,
)
from kqlmock.config.settings import get_settings
from kqlmock.ingest.errors import IngestError
from kqlmock.ingest.table_builder import ColumnTypePolicy, Table, TableBuilder
from kqlmock.query.registry import TableRegistry

logger = logging.getLogger(__name__)


class TableIngestor:
    """
    Builds and registers tables from JSON record batches.

    A batch either registers one complete table or nothing at all.
    """

    def __init__(
        self,
        registry: TableRegistry,
        policy: Optional[ColumnTypePolicy] = None,
    ):
        """
        Initialize ingestor.

        Args:
            registry: Registry receiving built tables
            policy: Column type policy (defaults to the configured one)
        """
        self.registry = registry
        self.builder = TableBuilder(
            policy or get_settings().column_type_policy)

    def ingest(
        self,
        table_name: str,
        records: Sequence[Dict[str, Any]],
    ) -> Optional[Table]:
        """
        Ingest a batch of records into a new table.

        Args:
            table_name: Name to register the table under
            records: JSON objects, in ingestion order

        Returns:
            The registered Table, or None for an empty batch

        Raises:
            IngestError: If the records cannot form a table
        """
        if not records:
            ingest_requests_total.labels(status="empty").inc()
            return None

        logger.info(
            f"Creating table '{table_name}' with {len(records)} rows")

        try:
            with PerformanceTracker("ingest_table", logger, table=table_name):
                table = self.builder.build(table_name, records)
        except IngestError as e:
            ingest_requests_total.labels(status="rejected").inc()
            logger.warning(f"Rejected records for table '{table_name}': {e}")
            raise

        self.registry.add_table(table)

        ingest_requests_total.labels(status="success").inc()
        rows_ingested_total.inc(table.row_count)
        tables_registered.set(len(self.registry))

        return table
