"""
Web API Schemas - Pydantic models for request/response
"""
from typing import Literal, Optional

from pydantic import BaseModel


class WriteResponse(BaseModel):
    success: bool = True
    id: int


class ErrorResponse(BaseModel):
    error: str
    traceback: Optional[str] = None


class HealthResponse(BaseModel):
    status: Literal["live", "ready", "degraded"]
    store: Optional[str] = None
    degraded: Optional[bool] = None
