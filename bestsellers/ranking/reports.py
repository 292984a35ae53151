"""
Performance Reports

Vendor and category breakdowns of a ranked list, ordered by aggregated
revenue. A product in several categories counts once in each of them.
"""

from typing import Dict, List, Sequence, Tuple

import polars as pl

from bestsellers.ranking.schemas import CategoryPerformance, RankedProductEntry, VendorPerformance

BREAKDOWN_AGGREGATES = [
    pl.col("product_id").count().alias("product_count"),
    pl.col("quantity").sum().alias("total_quantity_sold"),
    pl.col("revenue").sum().alias("total_revenue"),
]


def vendor_breakdown(
    ranked: Sequence[RankedProductEntry],
    top: int = 10,
) -> List[VendorPerformance]:
    """
    Top vendors by revenue over the ranked products.

    Ties on revenue are ordered by vendor id.
    """
    rows = [e for e in ranked if e.vendor_id is not None]
    if not rows:
        return []

    frame = pl.DataFrame(
        {
            "vendor_id": [e.vendor_id for e in rows],
            "product_id": [e.product_id for e in rows],
            "quantity": [e.total_quantity_sold for e in rows],
            "revenue": [e.total_revenue for e in rows],
        },
        schema={
            "vendor_id": pl.Int64,
            "product_id": pl.Int64,
            "quantity": pl.Int64,
            "revenue": pl.Float64,
        },
    )

    grouped = (
        frame.group_by("vendor_id")
        .agg(BREAKDOWN_AGGREGATES)
        .sort(["total_revenue", "vendor_id"], descending=[True, False])
        .head(top)
    )

    return [
        VendorPerformance(
            vendor_id=row["vendor_id"],
            product_count=row["product_count"],
            total_quantity_sold=row["total_quantity_sold"],
            total_revenue=round(row["total_revenue"], 2),
        )
        for row in grouped.iter_rows(named=True)
    ]


def category_breakdown(
    ranked: Sequence[RankedProductEntry],
    memberships: Dict[int, List[Tuple[int, str]]],
    top: int = 5,
) -> List[CategoryPerformance]:
    """
    Top categories by revenue over the ranked products.

    Args:
        ranked: Ranked entries
        memberships: product id -> [(category id, name)]
        top: Number of categories to keep
    """
    exploded = [
        (category_id, name, entry)
        for entry in ranked
        for category_id, name in memberships.get(entry.product_id, [])
    ]
    if not exploded:
        return []

    frame = pl.DataFrame(
        {
            "category_id": [c for c, _, _ in exploded],
            "name": [n for _, n, _ in exploded],
            "product_id": [e.product_id for _, _, e in exploded],
            "quantity": [e.total_quantity_sold for _, _, e in exploded],
            "revenue": [e.total_revenue for _, _, e in exploded],
        },
        schema={
            "category_id": pl.Int64,
            "name": pl.Utf8,
            "product_id": pl.Int64,
            "quantity": pl.Int64,
            "revenue": pl.Float64,
        },
    )

    grouped = (
        frame.group_by(["category_id", "name"])
        .agg(BREAKDOWN_AGGREGATES)
        .sort(["total_revenue", "category_id"], descending=[True, False])
        .head(top)
    )

    return [
        CategoryPerformance(
            category_id=row["category_id"],
            name=row["name"],
            product_count=row["product_count"],
            total_quantity_sold=row["total_quantity_sold"],
            total_revenue=round(row["total_revenue"], 2),
            average_unit_price=(
                round(row["total_revenue"] / row["total_quantity_sold"], 2)
                if row["total_quantity_sold"]
                else None
            ),
        )
        for row in grouped.iter_rows(named=True)
    ]
