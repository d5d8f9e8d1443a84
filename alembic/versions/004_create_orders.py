"""004: create orders and order_items

Money columns are BIGINT minor units (poisha). `version` backs the
optimistic compare-and-set of every ledger write.

Revision ID: 004
Revises: 003
Create Date: 2026-09-01
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id                  VARCHAR(32)     PRIMARY KEY,
            order_number        VARCHAR(32)     NOT NULL,
            customer_name       VARCHAR(200)    NOT NULL,
            customer_phone      VARCHAR(32)     NOT NULL,
            customer_email      VARCHAR(255),
            shipping_address    TEXT,
            shipping_method     VARCHAR(255),
            notes               TEXT,
            payment_method      VARCHAR(20)     NOT NULL,
            order_source        VARCHAR(32)     NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'pending',
            payment_status      VARCHAR(20)     NOT NULL DEFAULT 'pending',
            subtotal            BIGINT          NOT NULL DEFAULT 0,
            shipping_fee        BIGINT          NOT NULL DEFAULT 0,
            total               BIGINT          NOT NULL DEFAULT 0,
            payment_reference   VARCHAR(255),
            payment_nonce       VARCHAR(64),
            version             BIGINT          NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_orders_order_number   UNIQUE (order_number),
            CONSTRAINT ck_orders_status         CHECK (
                status IN ('pending', 'processing', 'shipped', 'delivered', 'cancelled')
            ),
            CONSTRAINT ck_orders_payment_status CHECK (
                payment_status IN ('pending', 'paid', 'failed', 'refunded')
            ),
            CONSTRAINT ck_orders_payment_method CHECK (
                payment_method IN ('cod', 'bkash', 'sslcommerz', 'uddoktapay')
            ),
            CONSTRAINT ck_orders_order_source   CHECK (
                order_source IN ('checkout', 'admin_manual', 'converted_from_incomplete')
            ),
            CONSTRAINT ck_orders_shipping_fee   CHECK (shipping_fee >= 0),
            CONSTRAINT ck_orders_total          CHECK (total = subtotal + shipping_fee)
        );
    """)
    op.execute("CREATE INDEX idx_orders_status ON orders (status, created_at DESC);")
    op.execute("CREATE INDEX idx_orders_payment_status ON orders (payment_status, created_at DESC);")
    op.execute("CREATE INDEX idx_orders_customer_phone ON orders (customer_phone);")
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE order_items (
            id              VARCHAR(32)     PRIMARY KEY,
            order_id        VARCHAR(32)     NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
            product_id      VARCHAR(64)     NOT NULL,
            product_name    VARCHAR(255)    NOT NULL,
            variant_id      VARCHAR(64),
            variant_name    VARCHAR(255),
            quantity        INT             NOT NULL,
            unit_price      BIGINT          NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_order_items_quantity   CHECK (quantity > 0),
            CONSTRAINT ck_order_items_unit_price CHECK (unit_price >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_order_items_order ON order_items (order_id);")
    op.execute("COMMENT ON COLUMN order_items.unit_price IS 'Price snapshot at order time';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS order_items CASCADE;")
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
