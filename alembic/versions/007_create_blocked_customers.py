"""007: create blocked_customers

Revision ID: 007
Revises: 006
Create Date: 2026-09-01
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE blocked_customers (
            id              VARCHAR(32)     PRIMARY KEY,
            reason          VARCHAR(500)    NOT NULL,
            email           VARCHAR(255),
            phone           VARCHAR(32),
            device_id       VARCHAR(255),
            ip_address      VARCHAR(64),
            custom_message  VARCHAR(500),
            expires_at      TIMESTAMPTZ,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            blocked_by      TEXT,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_blocked_customers_identity CHECK (
                COALESCE(email, phone, device_id, ip_address) IS NOT NULL
            )
        );
    """)
    for column in ("email", "phone", "device_id", "ip_address"):
        op.execute(f"""
            CREATE INDEX idx_blocked_customers_{column}
            ON blocked_customers ({column})
            WHERE is_active = TRUE AND {column} IS NOT NULL;
        """)
    op.execute("""
        CREATE TRIGGER trg_blocked_customers_updated_at
            BEFORE UPDATE ON blocked_customers
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS blocked_customers CASCADE;")
