from __future__ import annotations

from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=1, max_length=254)


class User(BaseModel):
    id: int
    name: str
    email: str


class ErrorResponse(BaseModel):
    error: str
    status_code: int | None = None
    error_code: str | None = None
