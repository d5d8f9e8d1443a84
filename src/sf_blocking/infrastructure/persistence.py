# src/sf_blocking/infrastructure/persistence.py
"""Raw SQL access to blocked_customers.

Stored identity values are normalised on insert (see CustomerIdentity), so
lookups compare plain equality. Expiry is evaluated at query time against
the caller's clock; no cleanup job is needed.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_blocking.domain.models import BlockedCustomer, CustomerIdentity

_COLUMNS = """id, reason, email, phone, device_id, ip_address, custom_message,
              expires_at, is_active, blocked_by, created_at"""

_FIND_MATCH_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM blocked_customers
    WHERE is_active = true
      AND (expires_at IS NULL OR expires_at > :now)
      AND (
            (CAST(:email AS TEXT) IS NOT NULL AND email = :email)
         OR (CAST(:phone AS TEXT) IS NOT NULL AND phone = :phone)
         OR (CAST(:device_id AS TEXT) IS NOT NULL AND device_id = :device_id)
         OR (CAST(:ip_address AS TEXT) IS NOT NULL AND ip_address = :ip_address)
      )
    ORDER BY created_at DESC
    LIMIT 1
""")

_INSERT_SQL = text(f"""
    INSERT INTO blocked_customers (id, reason, email, phone, device_id, ip_address,
        custom_message, expires_at, is_active, blocked_by)
    VALUES (:id, :reason, :email, :phone, :device_id, :ip_address,
        :custom_message, :expires_at, :is_active, :blocked_by)
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM blocked_customers WHERE id = :id")

_DEACTIVATE_SQL = text("""
    UPDATE blocked_customers SET is_active = false, updated_at = NOW()
    WHERE id = :id
    RETURNING id
""")

_SET_EXPIRY_SQL = text("""
    UPDATE blocked_customers SET expires_at = :expires_at, updated_at = NOW()
    WHERE id = :id
    RETURNING id
""")

_LIST_IN_FORCE_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM blocked_customers
    WHERE is_active = true AND (expires_at IS NULL OR expires_at > :now)
    ORDER BY created_at DESC
""")


def _row_to_block(row: Any) -> BlockedCustomer:
    return BlockedCustomer(
        id=row.id,
        reason=row.reason,
        email=row.email,
        phone=row.phone,
        device_id=row.device_id,
        ip_address=row.ip_address,
        custom_message=row.custom_message,
        expires_at=row.expires_at,
        is_active=row.is_active,
        blocked_by=row.blocked_by,
        created_at=row.created_at,
    )


class BlockedCustomerRepository:
    async def find_match(
        self, identity: CustomerIdentity, now: datetime, db: AsyncSession
    ) -> BlockedCustomer | None:
        row = (
            await db.execute(
                _FIND_MATCH_SQL,
                {
                    "now": now,
                    "email": identity.email,
                    "phone": identity.phone,
                    "device_id": identity.device_id,
                    "ip_address": identity.ip_address,
                },
            )
        ).fetchone()
        return _row_to_block(row) if row else None

    async def insert(self, block: BlockedCustomer, db: AsyncSession) -> BlockedCustomer:
        row = (
            await db.execute(
                _INSERT_SQL,
                {
                    "id": block.id,
                    "reason": block.reason,
                    "email": block.email,
                    "phone": block.phone,
                    "device_id": block.device_id,
                    "ip_address": block.ip_address,
                    "custom_message": block.custom_message,
                    "expires_at": block.expires_at,
                    "is_active": block.is_active,
                    "blocked_by": block.blocked_by,
                },
            )
        ).one()
        return _row_to_block(row)

    async def get(self, block_id: str, db: AsyncSession) -> BlockedCustomer | None:
        row = (await db.execute(_GET_SQL, {"id": block_id})).fetchone()
        return _row_to_block(row) if row else None

    async def deactivate(self, block_id: str, db: AsyncSession) -> bool:
        result = await db.execute(_DEACTIVATE_SQL, {"id": block_id})
        return result.fetchone() is not None

    async def set_expiry(self, block_id: str, expires_at: datetime, db: AsyncSession) -> bool:
        result = await db.execute(_SET_EXPIRY_SQL, {"id": block_id, "expires_at": expires_at})
        return result.fetchone() is not None

    async def list_in_force(self, now: datetime, db: AsyncSession) -> list[BlockedCustomer]:
        rows = (await db.execute(_LIST_IN_FORCE_SQL, {"now": now})).fetchall()
        return [_row_to_block(r) for r in rows]
