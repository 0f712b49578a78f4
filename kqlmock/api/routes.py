# API routes

from typing import Any, List

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status

from kqlmock.ingest.errors import IngestError
from kqlmock.ingest.processor import TableIngestor
from kqlmock.query.models import BatchRequest, BatchResponses
from kqlmock.query.orchestrator import BatchQueryOrchestrator

router = APIRouter()


def get_ingestor(request: Request) -> TableIngestor:
    return request.app.state.ingestor


def get_orchestrator(request: Request) -> BatchQueryOrchestrator:
    return request.app.state.orchestrator


@router.post("/table/{table}", status_code=status.HTTP_200_OK)
def create_table(
    table: str,
    records: List[Any] = Body(...),
    ingestor: TableIngestor = Depends(get_ingestor),
):
    """
    Create a table from a JSON array of records.

    - **table**: Name of the table to create (replaces an existing one)
    - **records**: JSON objects; all must carry the first record's fields

    An empty array is accepted and creates nothing.
    """
    try:
        ingestor.ingest(table, records)
    except IngestError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )


@router.post("/v1/$batch", response_model=BatchResponses)
async def batch_query(
    batch_request: BatchRequest,
    orchestrator: BatchQueryOrchestrator = Depends(get_orchestrator),
):
    """
    Run a batch of queries.

    Each item resolves independently to status 200 (with a PrimaryResult
    table), 400 (the query reported an error) or 500 (unexpected fault).
    Responses keep the order of the requests.
    """
    responses = await orchestrator.run_batch(batch_request.requests)
    return BatchResponses(responses=responses)
