"""006: create incomplete_orders

At most one open snapshot per checkout session (partial unique index used
by the capture upsert).

Revision ID: 006
Revises: 005
Create Date: 2026-09-01
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE incomplete_orders (
            id                  VARCHAR(32)     PRIMARY KEY,
            session_id          VARCHAR(255)    NOT NULL,
            customer_name       VARCHAR(200),
            customer_phone      VARCHAR(32),
            customer_email      VARCHAR(255),
            shipping_address    TEXT,
            shipping_code       VARCHAR(32),
            payment_method      VARCHAR(20),
            notes               TEXT,
            items               JSONB           NOT NULL DEFAULT '[]'::jsonb,
            subtotal            BIGINT          NOT NULL DEFAULT 0,
            shipping_fee        BIGINT          NOT NULL DEFAULT 0,
            total               BIGINT          NOT NULL DEFAULT 0,
            status              VARCHAR(20)     NOT NULL DEFAULT 'open',
            converted_order_id  VARCHAR(32)     REFERENCES orders (id),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_incomplete_orders_status CHECK (
                status IN ('open', 'converted', 'abandoned')
            ),
            CONSTRAINT ck_incomplete_orders_converted CHECK (
                (status = 'converted') = (converted_order_id IS NOT NULL)
            )
        );
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_incomplete_orders_open_session
        ON incomplete_orders (session_id)
        WHERE status = 'open';
    """)
    op.execute(
        "CREATE INDEX idx_incomplete_orders_status ON incomplete_orders (status, updated_at DESC);"
    )
    op.execute("""
        CREATE TRIGGER trg_incomplete_orders_updated_at
            BEFORE UPDATE ON incomplete_orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS incomplete_orders CASCADE;")
