"""Uniform response envelope shared by every endpoint."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

DataT = TypeVar("DataT")


class Envelope(BaseModel, Generic[DataT]):
    """``{success, message?, data?}`` wrapper for successful responses."""

    success: bool = True
    message: str | None = None
    data: DataT | None = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    message: str
    code: str
    details: Any = None

