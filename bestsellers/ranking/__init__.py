"""
Ranking Module

Aggregation, ranking, recompute and the query service. Import the service
classes from their submodules; this package only re-exports the shared types.
"""
from .exceptions import (
    BestSellersError,
    DataSourceError,
    InvalidArgument,
    OperationTimeout,
    PartialRecomputeFailure,
    RecomputeInProgress,
)
from .windows import TimeRange, Window

__all__ = [
    "BestSellersError",
    "DataSourceError",
    "InvalidArgument",
    "OperationTimeout",
    "PartialRecomputeFailure",
    "RecomputeInProgress",
    "TimeRange",
    "Window",
]
