from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_blocking.domain.models import BlockedCustomer, CustomerIdentity


class BlockedCustomerRepositoryProtocol(Protocol):
    async def find_match(
        self, identity: CustomerIdentity, now: datetime, db: AsyncSession
    ) -> BlockedCustomer | None: ...

    async def insert(self, block: BlockedCustomer, db: AsyncSession) -> BlockedCustomer: ...

    async def get(self, block_id: str, db: AsyncSession) -> BlockedCustomer | None: ...

    async def deactivate(self, block_id: str, db: AsyncSession) -> bool: ...

    async def set_expiry(self, block_id: str, expires_at: datetime, db: AsyncSession) -> bool: ...

    async def list_in_force(self, now: datetime, db: AsyncSession) -> list[BlockedCustomer]: ...
