"""
Unit tests for batch query orchestration.
"""

import asyncio
import threading
import time
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pyarrow as pa

from kqlmock.common.metrics import batch_items_total
from kqlmock.query.engine import QueryEngine, QueryResult, ResultColumn
from kqlmock.query.models import BatchRequestItem, RequestBody
from kqlmock.query.orchestrator import BatchQueryOrchestrator


def make_items(*queries):
    return [
        BatchRequestItem(id=f"item-{i}", body=RequestBody(query=q))
        for i, q in enumerate(queries)
    ]


def echo_result(text: str) -> QueryResult:
    return QueryResult(
        row_count=1,
        columns=[ResultColumn(name="query", data_type=pa.string())],
        rows=[[text]],
    )


class LatencySkewEngine(QueryEngine):
    """Async engine where the 'slow' query resolves last."""

    def __init__(self):
        self.completed = []

    async def run_query(self, text: str) -> QueryResult:
        await asyncio.sleep(0.2 if text == "slow" else 0.01)
        self.completed.append(text)
        return echo_result(text)


class MixedOutcomeEngine(QueryEngine):
    """Sync engine returning success, a query error, or raising."""

    def run_query(self, text: str) -> QueryResult:
        if text == "bad":
            return QueryResult.failed("Syntax error near 'bad'")
        if text == "boom":
            raise RuntimeError("engine crashed")
        return echo_result(text)


class BarrierEngine(QueryEngine):
    """Only completes once every expected query has started."""

    def __init__(self, expected: int):
        self.expected = expected
        self.started = 0
        self.all_started = asyncio.Event()

    async def run_query(self, text: str) -> QueryResult:
        self.started += 1
        if self.started == self.expected:
            self.all_started.set()
        await self.all_started.wait()
        return echo_result(text)


class InFlightEngine(QueryEngine):
    """Tracks the highest number of queries running at once."""

    def __init__(self):
        self.in_flight = 0
        self.max_in_flight = 0

    async def run_query(self, text: str) -> QueryResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return echo_result(text)


class HangingEngine(QueryEngine):
    async def run_query(self, text: str) -> QueryResult:
        if text == "hang":
            await asyncio.sleep(10)
        return echo_result(text)


class TypedEngine(QueryEngine):
    def __init__(self, result: QueryResult):
        self.result = result

    def run_query(self, text: str) -> QueryResult:
        return self.result


class TestBatchQueryOrchestrator:
    """Tests for BatchQueryOrchestrator."""

    @pytest.mark.asyncio
    async def test_order_preserved_regardless_of_completion(self):
        engine = LatencySkewEngine()
        orchestrator = BatchQueryOrchestrator(engine)

        responses = await orchestrator.run_batch(make_items("slow", "fast"))

        assert engine.completed == ["fast", "slow"]
        assert [r.id for r in responses] == ["item-0", "item-1"]
        assert responses[0].body.tables[0].rows == [["slow"]]
        assert responses[1].body.tables[0].rows == [["fast"]]

    @pytest.mark.asyncio
    async def test_per_item_isolation(self):
        orchestrator = BatchQueryOrchestrator(MixedOutcomeEngine())

        responses = await orchestrator.run_batch(make_items("ok", "bad", "boom"))

        assert len(responses) == 3
        assert [r.status for r in responses] == [200, 400, 500]
        assert responses[0].body is not None
        assert responses[1].body is None
        assert responses[2].body is None

    @pytest.mark.asyncio
    async def test_success_envelope(self):
        orchestrator = BatchQueryOrchestrator(MixedOutcomeEngine())

        [response] = await orchestrator.run_batch(make_items("ok"))

        assert response.status == 200
        assert response.model_dump() == {
            "id": "item-0",
            "status": 200,
            "body": {
                "tables": [{
                    "name": "PrimaryResult",
                    "columns": [{"name": "query", "type": "string"}],
                    "rows": [["ok"]],
                }],
            },
        }

    @pytest.mark.asyncio
    async def test_items_run_concurrently(self):
        engine = BarrierEngine(expected=3)
        orchestrator = BatchQueryOrchestrator(engine, timeout_seconds=2.0)

        responses = await orchestrator.run_batch(make_items("a", "b", "c"))

        assert [r.status for r in responses] == [200, 200, 200]

    @pytest.mark.asyncio
    async def test_concurrency_cap(self):
        engine = InFlightEngine()
        orchestrator = BatchQueryOrchestrator(engine, max_concurrency=2)

        responses = await orchestrator.run_batch(make_items(*"abcdef"))

        assert len(responses) == 6
        assert engine.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_timeout_resolves_to_fault(self):
        orchestrator = BatchQueryOrchestrator(HangingEngine(), timeout_seconds=0.05)

        responses = await orchestrator.run_batch(make_items("hang", "quick"))

        assert [r.status for r in responses] == [500, 200]

    @pytest.mark.asyncio
    async def test_unsupported_column_type_is_fault(self):
        result = QueryResult(
            row_count=1,
            columns=[ResultColumn(name="f", data_type=pa.float32())],
            rows=[[1.5]],
        )
        orchestrator = BatchQueryOrchestrator(TypedEngine(result))

        [response] = await orchestrator.run_batch(make_items("q"))

        assert response.status == 500

    @pytest.mark.asyncio
    async def test_column_types_and_cells_encoded(self):
        result = QueryResult(
            row_count=1,
            columns=[
                ResultColumn(name="when", data_type=pa.timestamp("us")),
                ResultColumn(name="took", data_type=pa.duration("us")),
                ResultColumn(name="amount", data_type=pa.decimal128(10, 2)),
                ResultColumn(name="n", data_type=pa.int64()),
                ResultColumn(name="props", data_type=pa.json_()),
            ],
            rows=[[
                datetime(2024, 5, 1, 12, 30),
                timedelta(hours=1, seconds=5),
                Decimal("12.50"),
                7,
                '{"k":[1,2]}',
            ]],
        )
        orchestrator = BatchQueryOrchestrator(TypedEngine(result))

        [response] = await orchestrator.run_batch(make_items("q"))
        table = response.body.tables[0]

        assert [c.type for c in table.columns] == [
            "datetime", "timespan", "decimal", "long", "dynamic"]
        assert table.rows == [[
            "2024-05-01T12:30:00Z",
            "01:00:05",
            "12.50",
            7,
            {"k": [1, 2]},
        ]]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        orchestrator = BatchQueryOrchestrator(MixedOutcomeEngine())
        assert await orchestrator.run_batch([]) == []

    @pytest.mark.asyncio
    async def test_status_metrics(self):
        before = batch_items_total.labels(status="400")._value.get()
        orchestrator = BatchQueryOrchestrator(MixedOutcomeEngine())

        await orchestrator.run_batch(make_items("bad", "bad"))

        assert batch_items_total.labels(status="400")._value.get() == before + 2

    @pytest.mark.asyncio
    async def test_against_duckdb(self, registry, ingestor):
        from kqlmock.query.duckdb_engine import DuckDbQueryEngine

        ingestor.ingest("Events", [{"b": 1, "a": "x"}, {"b": 2, "a": "y"}])
        orchestrator = BatchQueryOrchestrator(DuckDbQueryEngine(registry))

        responses = await orchestrator.run_batch(make_items(
            "SELECT * FROM Events ORDER BY b",
            "SELECT * FROM Nope",
        ))

        assert responses[0].status == 200
        table = responses[0].body.tables[0]
        assert [(c.name, c.type) for c in table.columns] == [("b", "int"), ("a", "string")]
        assert table.rows == [[1, "x"], [2, "y"]]
        assert responses[1].status == 400

    @pytest.mark.asyncio
    async def test_dynamic_columns_against_duckdb(self, registry, ingestor):
        from kqlmock.query.duckdb_engine import DuckDbQueryEngine

        ingestor.ingest("E", [{"d": {"x": [1, 2]}, "n": 1}, {"d": [3], "n": 2}])
        orchestrator = BatchQueryOrchestrator(DuckDbQueryEngine(registry))

        select_d, select_x = await orchestrator.run_batch(make_items(
            "SELECT d FROM E ORDER BY n",
            "SELECT d->'x' AS j FROM E ORDER BY n",
        ))

        table = select_d.body.tables[0]
        assert [(c.name, c.type) for c in table.columns] == [("d", "dynamic")]
        assert table.rows == [[{"x": [1, 2]}], [[3]]]
        assert select_x.body.tables[0].columns[0].type == "dynamic"
        assert select_x.body.tables[0].rows[0] == [[1, 2]]


class BlockingEngine(QueryEngine):
    """Sync engine whose 'slow' query outlives the item timeout."""

    def __init__(self):
        self.lock = threading.Lock()
        self.running = 0
        self.max_running = 0

    def run_query(self, text: str) -> QueryResult:
        with self.lock:
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        try:
            time.sleep(0.3 if text == "slow" else 0.01)
            return echo_result(text)
        finally:
            with self.lock:
                self.running -= 1


class TestConcurrencyCapWithThreads:

    @pytest.mark.asyncio
    async def test_timed_out_thread_keeps_its_slot(self):
        engine = BlockingEngine()
        orchestrator = BatchQueryOrchestrator(
            engine, timeout_seconds=0.05, max_concurrency=1)

        responses = await orchestrator.run_batch(make_items("slow", "next"))

        assert [r.status for r in responses] == [500, 200]
        assert engine.max_running == 1
