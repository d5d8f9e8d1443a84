from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_checkout.domain.models import CatalogProduct, IncompleteOrder, ShippingOption


class CatalogProtocol(Protocol):
    """Read-only view of the catalog owned by the storefront."""

    async def get_product(
        self, product_id: str, variant_id: str | None, db: AsyncSession
    ) -> CatalogProduct | None:
        """Active product (and variant) with its current price, or None."""
        ...

    async def get_shipping_option(self, code: str, db: AsyncSession) -> ShippingOption | None: ...


class IncompleteOrderRepositoryProtocol(Protocol):
    async def upsert_open(self, snapshot: IncompleteOrder, db: AsyncSession) -> IncompleteOrder:
        """Insert, or overwrite the open snapshot of the same session."""
        ...

    async def get(self, incomplete_id: str, db: AsyncSession) -> IncompleteOrder | None: ...

    async def mark_converted(
        self, incomplete_id: str, order_id: str, db: AsyncSession
    ) -> bool:
        """open -> converted; False when the row is not open (any more)."""
        ...

    async def mark_abandoned(self, incomplete_id: str, db: AsyncSession) -> bool: ...

    async def list_by_status(
        self, status: str, limit: int, db: AsyncSession
    ) -> list[IncompleteOrder]: ...
