from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class APIModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ErrorDetail(APIModel):
    kind: str
    message: str
    identifiers: list[str] = Field(default_factory=list)


class ErrorResponse(APIModel):
    error: ErrorDetail


class PageMeta(APIModel):
    total: int
    page: int
    page_size: int
    pages: int
