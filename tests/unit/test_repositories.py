"""
Unit Tests - Catalog Repository
"""
import pytest

from bestsellers.database.models import ProductStatus
from bestsellers.database.repositories import CatalogRepository
from bestsellers.ranking.exceptions import DataSourceError


@pytest.fixture
def catalog(session_factory) -> CatalogRepository:
    return CatalogRepository(session_factory)


@pytest.fixture
async def products(ledger):
    await ledger.add_category(1, "Garden")
    await ledger.add_category(2, "Kitchen")
    await ledger.add_product(1, category_ids=[1, 2])
    await ledger.add_product(2, category_ids=[2])
    await ledger.add_product(3, status=ProductStatus.DRAFT)
    await ledger.add_product(4, is_deleted=True, category_ids=[1])


class TestProductLookups:
    """Tests for reading products"""

    async def test_get_product(self, catalog, products):
        product = await catalog.get_product(2)

        assert product is not None
        assert product.sku == "SKU-00002"
        assert product.best_seller_rank is None

    async def test_get_missing_product(self, catalog, products):
        assert await catalog.get_product(99) is None

    async def test_all_ids_include_unlisted_products(self, catalog, products):
        assert await catalog.list_all_product_ids() == [1, 2, 3, 4]

    async def test_count_only_listed_products(self, catalog, products):
        assert await catalog.count_listed_products() == 2

    async def test_unreachable_database(self, broken_session_factory):
        with pytest.raises(DataSourceError):
            await CatalogRepository(broken_session_factory).get_product(1)


class TestCategoryMemberships:
    """Tests for product to category lookups"""

    async def test_memberships_by_product(self, catalog, products):
        memberships = await catalog.category_memberships([1, 2, 3])

        assert memberships == {
            1: [(1, "Garden"), (2, "Kitchen")],
            2: [(2, "Kitchen")],
        }

    async def test_no_ids_skips_query(self, broken_session_factory):
        assert await CatalogRepository(broken_session_factory).category_memberships([]) == {}
