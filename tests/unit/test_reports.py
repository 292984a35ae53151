"""
Unit Tests - Performance Breakdowns
"""
from bestsellers.ranking.reports import category_breakdown, vendor_breakdown
from bestsellers.ranking.schemas import RankedProductEntry


def entry(product_id: int, vendor_id, quantity: int, revenue: float) -> RankedProductEntry:
    return RankedProductEntry(
        product_id=product_id,
        vendor_id=vendor_id,
        total_quantity_sold=quantity,
        total_revenue=revenue,
        unique_buyer_count=1,
        rank=product_id,
    )


RANKED = [
    entry(1, vendor_id=7, quantity=40, revenue=400.0),
    entry(2, vendor_id=3, quantity=30, revenue=900.0),
    entry(3, vendor_id=7, quantity=20, revenue=600.0),
    entry(4, vendor_id=5, quantity=10, revenue=1000.0),
]


class TestVendorBreakdown:
    """Tests for top vendors by revenue"""

    def test_vendors_ordered_by_revenue(self):
        """Vendors 5 and 7 tie on revenue; the lower id comes first"""
        vendors = vendor_breakdown(RANKED)

        assert [(v.vendor_id, v.product_count, v.total_quantity_sold, v.total_revenue) for v in vendors] == [
            (5, 1, 10, 1000.0),
            (7, 2, 60, 1000.0),
            (3, 1, 30, 900.0),
        ]

    def test_top_limits_vendors(self):
        assert [v.vendor_id for v in vendor_breakdown(RANKED, top=1)] == [5]

    def test_products_without_vendor_skipped(self):
        vendors = vendor_breakdown([entry(1, vendor_id=None, quantity=5, revenue=50.0)])

        assert vendors == []

    def test_empty_ranking(self):
        assert vendor_breakdown([]) == []


class TestCategoryBreakdown:
    """Tests for the per-category breakdown"""

    MEMBERSHIPS = {
        1: [(10, "Garden")],
        2: [(10, "Garden"), (20, "Kitchen")],
        4: [(20, "Kitchen")],
    }

    def test_product_counts_in_each_of_its_categories(self):
        categories = category_breakdown(RANKED, self.MEMBERSHIPS)

        assert [(c.category_id, c.name) for c in categories] == [(20, "Kitchen"), (10, "Garden")]
        kitchen, garden = categories
        assert (kitchen.product_count, kitchen.total_quantity_sold, kitchen.total_revenue) == (2, 40, 1900.0)
        assert (garden.product_count, garden.total_quantity_sold, garden.total_revenue) == (2, 70, 1300.0)
        assert kitchen.average_unit_price == 47.5
        assert garden.average_unit_price == 18.57

    def test_uncategorized_products_ignored(self):
        categories = category_breakdown(RANKED, {})

        assert categories == []

    def test_top_limits_categories(self):
        categories = category_breakdown(RANKED, self.MEMBERSHIPS, top=1)

        assert [c.category_id for c in categories] == [20]
