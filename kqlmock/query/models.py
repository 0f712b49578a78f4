# Batch query request/response envelope

from typing import Any, List, Optional

from pydantic import BaseModel

PRIMARY_RESULT = "PrimaryResult"


class RequestBody(BaseModel):
    query: str


class BatchRequestItem(BaseModel):
    id: str
    body: RequestBody

    @property
    def query(self) -> str:
        return self.body.query


class BatchRequest(BaseModel):
    requests: List[BatchRequestItem]


class ColumnResponse(BaseModel):
    name: str
    type: str


class TableResponse(BaseModel):
    name: str = PRIMARY_RESULT
    columns: List[ColumnResponse]
    rows: List[List[Any]]


class BodyResponse(BaseModel):
    tables: List[TableResponse]


class BatchResponseItem(BaseModel):
    id: str
    status: int
    body: Optional[BodyResponse] = None


class BatchResponses(BaseModel):
    responses: List[BatchResponseItem]
