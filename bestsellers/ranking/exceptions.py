"""
Ranking Engine Errors

InvalidArgument and DataSourceError are what query callers see;
RecomputeInProgress and PartialRecomputeFailure belong to the recompute.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bestsellers.ranking.schemas import RecomputeResult


class BestSellersError(Exception):
    """Base class for ranking engine errors"""


class InvalidArgument(BestSellersError, ValueError):
    """Bad or out-of-range caller input; never retried"""


class DataSourceError(BestSellersError):
    """The order ledger or catalog store is unreachable or returned bad data"""


class OperationTimeout(BestSellersError):
    """A caller-supplied deadline elapsed before the operation completed"""


class RecomputeInProgress(BestSellersError):
    """A full recompute is already running"""


class PartialRecomputeFailure(BestSellersError):
    """One or more per-product writes failed during an otherwise complete run"""

    def __init__(self, result: "RecomputeResult"):
        self.result = result
        super().__init__(
            f"{len(result.failures)} product write(s) failed, "
            f"{result.products_updated} product(s) updated"
        )
