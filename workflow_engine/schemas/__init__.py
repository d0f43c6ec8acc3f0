"""Pydantic schemas for the HTTP boundary."""

from .common import HealthResponse, RootResponse, SuccessResponse
from .execution import (
    ExecutionDetailResponse,
    ExecutionListItem,
    ExecutionQueuedResponse,
    ExecutionStatsResponse,
)

__all__ = [
    "SuccessResponse",
    "HealthResponse",
    "RootResponse",
    "ExecutionQueuedResponse",
    "ExecutionListItem",
    "ExecutionDetailResponse",
    "ExecutionStatsResponse",
]
