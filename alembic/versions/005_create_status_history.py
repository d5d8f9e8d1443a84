"""005: create order_status_history and payment_status_history

Append-only. BIGSERIAL ids order each log; changed_by is NULL for
system / gateway originated entries.

Revision ID: 005
Revises: 004
Create Date: 2026-09-01
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_TABLES = {
    "order_status_history": "'pending', 'processing', 'shipped', 'delivered', 'cancelled'",
    "payment_status_history": "'pending', 'paid', 'failed', 'refunded'",
}


def upgrade() -> None:
    for table, values in _TABLES.items():
        op.execute(f"""
            CREATE TABLE {table} (
                id              BIGSERIAL       PRIMARY KEY,
                order_id        VARCHAR(32)     NOT NULL REFERENCES orders (id),
                old_status      VARCHAR(20),
                new_status      VARCHAR(20)     NOT NULL,
                changed_by      TEXT,
                notes           TEXT,
                changed_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
                CONSTRAINT ck_{table}_old CHECK (old_status IS NULL OR old_status IN ({values})),
                CONSTRAINT ck_{table}_new CHECK (new_status IN ({values}))
            );
        """)
        op.execute(f"CREATE INDEX idx_{table}_order ON {table} (order_id, id);")
        # Append-only: refuse updates and deletes at the database level.
        op.execute(f"CREATE RULE rl_{table}_no_update AS ON UPDATE TO {table} DO INSTEAD NOTHING;")
        op.execute(f"CREATE RULE rl_{table}_no_delete AS ON DELETE TO {table} DO INSTEAD NOTHING;")


def downgrade() -> None:
    for table in _TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
