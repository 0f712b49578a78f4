"""
Batch query orchestration.

Runs every item of a batch against the query engine concurrently and
collects one response per item, in request order. A failing item never
affects its siblings or the batch as a whole.
"""

import asyncio
import functools
import inspect
import logging
import time
from typing import List, Optional, Sequence

from kqlmock.common.logging_config import PerformanceTracker, set_batch_item
from kqlmock.common.metrics import (
    batch_items_total,
    query_latency_seconds,
    track_batch_time,
)
from kqlmock.ingest.type_mapper import wire_type
from kqlmock.query.engine import QueryEngine, QueryResult
from kqlmock.query.models import (
    PRIMARY_RESULT,
    BatchRequestItem,
    BatchResponseItem,
    BodyResponse,
    ColumnResponse,
    TableResponse,
)
from kqlmock.query.wire import encode_row

logger = logging.getLogger(__name__)

STATUS_OK = 200
STATUS_QUERY_ERROR = 400
STATUS_FAULT = 500


class BatchQueryOrchestrator:
    """
    Fans a batch of queries out to a query engine and joins the results.

    Coroutine engines are awaited directly; plain engines run in worker
    threads so a slow query never blocks the event loop.
    """

    def __init__(
        self,
        engine: QueryEngine,
        timeout_seconds: Optional[float] = None,
        max_concurrency: int = 0,
    ):
        """
        Initialize orchestrator.

        Args:
            engine: Engine executing individual queries
            timeout_seconds: Per-item timeout, None or 0 to disable
            max_concurrency: Cap on queries running at once, 0 for no cap
        """
        self.engine = engine
        self.timeout_seconds = timeout_seconds or None
        self.max_concurrency = max_concurrency

    @track_batch_time
    async def run_batch(
        self,
        items: Sequence[BatchRequestItem],
    ) -> List[BatchResponseItem]:
        """
        Resolve every item of a batch.

        Args:
            items: Batch items in request order

        Returns:
            One response per item, in the same order as items
        """
        semaphore = (
            asyncio.Semaphore(self.max_concurrency)
            if self.max_concurrency > 0 else None
        )

        with PerformanceTracker("run_batch", logger, items=len(items)):
            responses = await asyncio.gather(
                *(self._run_item(item, semaphore) for item in items)
            )

        return list(responses)

    async def _run_item(
        self,
        item: BatchRequestItem,
        semaphore: Optional[asyncio.Semaphore],
    ) -> BatchResponseItem:
        """Resolve a single item. Never raises for query or engine faults."""
        query = item.query
        set_batch_item(item.id)
        logger.info(f"Running '{query}'")
        start_time = time.time()

        try:
            result = await self._execute(query, semaphore)

            if not result.succeeded:
                logger.error(f"Failed running query '{query}': {result.error}")
                return self._respond(item, STATUS_QUERY_ERROR)

            logger.info(
                f"Success running query '{query}': {result.row_count} rows")
            return self._respond(item, STATUS_OK, self._to_body(result))

        except asyncio.TimeoutError:
            logger.error(
                f"Timed out running query '{query}' "
                f"after {self.timeout_seconds}s")
            return self._respond(item, STATUS_FAULT)
        except Exception as e:
            logger.exception(f"Exception running query '{query}': {e}")
            return self._respond(item, STATUS_FAULT)
        finally:
            query_latency_seconds.observe(time.time() - start_time)

    async def _execute(
        self,
        query: str,
        semaphore: Optional[asyncio.Semaphore],
    ) -> QueryResult:
        """
        Run one query, holding a concurrency slot until the engine returns.

        Coroutine engines are cancelled on timeout. A worker thread cannot
        be interrupted, so a timed-out threaded query keeps its slot until
        the thread finishes.
        """
        threaded = not inspect.iscoroutinefunction(self.engine.run_query)
        if semaphore is not None:
            await semaphore.acquire()

        if threaded:
            task = asyncio.create_task(
                asyncio.to_thread(self.engine.run_query, query))
        else:
            task = asyncio.create_task(self.engine.run_query(query))
        task.add_done_callback(functools.partial(self._finish, semaphore))

        pending = asyncio.shield(task) if threaded else task
        if self.timeout_seconds is None:
            return await pending
        return await asyncio.wait_for(pending, timeout=self.timeout_seconds)

    @staticmethod
    def _finish(
        semaphore: Optional[asyncio.Semaphore],
        task: "asyncio.Task[QueryResult]",
    ) -> None:
        if semaphore is not None:
            semaphore.release()
        # Outcomes of abandoned tasks are dropped
        if not task.cancelled():
            task.exception()

    @staticmethod
    def _to_body(result: QueryResult) -> BodyResponse:
        column_types = [wire_type(column.data_type) for column in result.columns]
        columns = [
            ColumnResponse(name=column.name, type=column_type.value)
            for column, column_type in zip(result.columns, column_types)
        ]
        table = TableResponse(
            name=PRIMARY_RESULT,
            columns=columns,
            rows=[encode_row(row, column_types) for row in result.rows],
        )
        return BodyResponse(tables=[table])

    @staticmethod
    def _respond(
        item: BatchRequestItem,
        status: int,
        body: Optional[BodyResponse] = None,
    ) -> BatchResponseItem:
        batch_items_total.labels(status=str(status)).inc()
        return BatchResponseItem(id=item.id, status=status, body=body)
