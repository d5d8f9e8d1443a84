"""003: create catalog read tables (products, variants, shipping options)

The storefront owns these; the order service only reads current prices.

Revision ID: 003
Revises: 002
Create Date: 2026-09-01
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE products (
            id              VARCHAR(64)     PRIMARY KEY,
            name            VARCHAR(255)    NOT NULL,
            price           BIGINT          NOT NULL,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_products_price CHECK (price >= 0)
        );
    """)
    op.execute("""
        CREATE TABLE product_variants (
            id              VARCHAR(64)     PRIMARY KEY,
            product_id      VARCHAR(64)     NOT NULL REFERENCES products (id),
            name            VARCHAR(255)    NOT NULL,
            price           BIGINT,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_product_variants_price CHECK (price IS NULL OR price >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_product_variants_product ON product_variants (product_id);")
    op.execute("""
        CREATE TABLE shipping_options (
            code            VARCHAR(32)     PRIMARY KEY,
            name            VARCHAR(255)    NOT NULL,
            fee             BIGINT          NOT NULL,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_shipping_options_fee CHECK (fee >= 0)
        );
    """)
    for table in ("products", "product_variants", "shipping_options"):
        op.execute(f"""
            CREATE TRIGGER trg_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
        """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS shipping_options CASCADE;")
    op.execute("DROP TABLE IF EXISTS product_variants CASCADE;")
    op.execute("DROP TABLE IF EXISTS products CASCADE;")
