"""SqlCatalog: price lookups against the storefront's catalog tables.

Read-only. Variant prices override the product price when set.
"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_checkout.domain.models import CatalogProduct, ShippingOption

_PRODUCT_SQL = text("""
    SELECT id, name, price
    FROM products
    WHERE id = :product_id AND is_active = true
""")

_VARIANT_SQL = text("""
    SELECT p.id AS product_id, p.name AS product_name, p.price AS product_price,
           v.id AS variant_id, v.name AS variant_name, v.price AS variant_price
    FROM product_variants v
    JOIN products p ON p.id = v.product_id
    WHERE v.id = :variant_id AND v.product_id = :product_id
      AND v.is_active = true AND p.is_active = true
""")

_SHIPPING_SQL = text("""
    SELECT code, name, fee
    FROM shipping_options
    WHERE code = :code AND is_active = true
""")


class SqlCatalog:
    async def get_product(
        self, product_id: str, variant_id: str | None, db: AsyncSession
    ) -> CatalogProduct | None:
        if variant_id is None:
            row = (await db.execute(_PRODUCT_SQL, {"product_id": product_id})).fetchone()
            if row is None:
                return None
            return CatalogProduct(product_id=row.id, name=row.name, unit_price=row.price)

        row = (
            await db.execute(_VARIANT_SQL, {"product_id": product_id, "variant_id": variant_id})
        ).fetchone()
        if row is None:
            return None
        return CatalogProduct(
            product_id=row.product_id,
            name=row.product_name,
            unit_price=row.variant_price if row.variant_price is not None else row.product_price,
            variant_id=row.variant_id,
            variant_name=row.variant_name,
        )

    async def get_shipping_option(self, code: str, db: AsyncSession) -> ShippingOption | None:
        row = (await db.execute(_SHIPPING_SQL, {"code": code})).fetchone()
        if row is None:
            return None
        return ShippingOption(code=row.code, name=row.name, fee=row.fee)
