"""
Ranking Engine

Orders aggregated metrics with a fixed comparator and assigns dense ranks:

    quantity sold desc, then revenue desc, then unique buyers desc

Entries equal on all three keys keep their input order, which keeps
pagination stable across repeated identical queries. The sort runs on a
polars frame of (position, keys) so the metric objects are never copied.
"""

import math
from typing import List, Optional, Sequence

import polars as pl
import structlog

from bestsellers.ranking.schemas import AggregatedProductMetric, RankedProductEntry

logger = structlog.get_logger(__name__)

SORT_KEYS = ["quantity", "revenue", "buyers"]


class RankingEngine:
    """
    Deterministic ranking plus the catalog-relative best-seller policy.

    Args:
        best_seller_ratio: Share of the catalog that locates the threshold
        best_seller_min_count: Lower bound on the threshold position
        best_seller_cap: Highest rank that may ever be flagged
    """

    def __init__(
        self,
        best_seller_ratio: float = 0.10,
        best_seller_min_count: int = 5,
        best_seller_cap: int = 100,
    ):
        self.best_seller_ratio = best_seller_ratio
        self.best_seller_min_count = best_seller_min_count
        self.best_seller_cap = best_seller_cap

    def rank(
        self,
        metrics: Sequence[AggregatedProductMetric],
        min_sales: int = 1,
    ) -> List[RankedProductEntry]:
        """
        Filter by minimum quantity, sort and assign 1-based ranks.

        Args:
            metrics: Aggregated metrics in aggregator order
            min_sales: Minimum total quantity sold to be kept

        Returns:
            Ranked entries, rank 1 first
        """
        if not metrics:
            return []

        frame = pl.DataFrame(
            {
                "position": list(range(len(metrics))),
                "quantity": [m.total_quantity_sold for m in metrics],
                "revenue": [m.total_revenue for m in metrics],
                "buyers": [m.unique_buyer_count for m in metrics],
            },
            schema={
                "position": pl.Int64,
                "quantity": pl.Int64,
                "revenue": pl.Float64,
                "buyers": pl.Int64,
            },
        )

        order = (
            frame.filter(pl.col("quantity") >= min_sales)
            .sort(SORT_KEYS, descending=True, maintain_order=True)
            .get_column("position")
            .to_list()
        )

        ranked = [
            RankedProductEntry(**metrics[position].model_dump(), rank=index + 1)
            for index, position in enumerate(order)
        ]

        logger.debug(
            "Metrics ranked",
            input=len(metrics),
            ranked=len(ranked),
            min_sales=min_sales,
        )
        return ranked

    def threshold_position(self, catalog_size: int) -> int:
        """N = max(min_count, floor(catalog_size * ratio))"""
        return max(self.best_seller_min_count, math.floor(catalog_size * self.best_seller_ratio))

    def best_seller_threshold(
        self,
        ranked: Sequence[RankedProductEntry],
        catalog_size: int,
    ) -> Optional[int]:
        """
        Quantity sold by the N-th ranked product.

        When fewer than N products are ranked the last ranked product sets the
        threshold. None when nothing is ranked.
        """
        if not ranked:
            return None
        position = min(self.threshold_position(catalog_size), len(ranked))
        return ranked[position - 1].total_quantity_sold

    def select_best_sellers(
        self,
        ranked: Sequence[RankedProductEntry],
        catalog_size: int,
    ) -> List[RankedProductEntry]:
        """
        Apply the threshold and rank cap to a full-catalog ranking.

        Returns:
            Flagged copies of the qualifying entries, in rank order
        """
        threshold = self.best_seller_threshold(ranked, catalog_size)
        if threshold is None:
            return []

        selected = [
            entry.model_copy(update={"is_best_seller": True})
            for entry in ranked
            if entry.rank <= self.best_seller_cap and entry.total_quantity_sold >= threshold
        ]

        logger.info(
            "Best sellers selected",
            catalog_size=catalog_size,
            threshold_position=self.threshold_position(catalog_size),
            threshold=threshold,
            selected=len(selected),
            cap=self.best_seller_cap,
        )
        return selected
