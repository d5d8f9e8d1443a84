"""BlockingGate: consulted by the order composer before any order is created.

Lookups fail closed: a database error while checking propagates and no
order is created.
"""
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_blocking.domain.models import BlockCheck, BlockedCustomer, CustomerIdentity
from src.sf_blocking.domain.repository import BlockedCustomerRepositoryProtocol
from src.sf_blocking.infrastructure.persistence import BlockedCustomerRepository
from src.sf_common.datetime_utils import utc_now
from src.sf_common.errors import (
    AdminRequiredError,
    BlockedCustomerError,
    BlockNotFoundError,
    InvalidIdentityError,
)
from src.sf_common.id_generator import generate_id

logger = logging.getLogger(__name__)


class BlockingGate:
    def __init__(self, repo: BlockedCustomerRepositoryProtocol | None = None) -> None:
        self._repo: BlockedCustomerRepositoryProtocol = repo or BlockedCustomerRepository()

    async def is_blocked(
        self, identity: CustomerIdentity, db: AsyncSession, now: datetime | None = None
    ) -> BlockCheck:
        identity = identity.normalized()
        if identity.is_empty:
            return BlockCheck(blocked=False)
        block = await self._repo.find_match(identity, now or utc_now(), db)
        if block is None:
            return BlockCheck(blocked=False)
        return BlockCheck(blocked=True, message=block.custom_message, block_id=block.id)

    async def ensure_not_blocked(self, identity: CustomerIdentity, db: AsyncSession) -> None:
        check = await self.is_blocked(identity, db)
        if check.blocked:
            logger.info("Checkout refused by block %s", check.block_id)
            raise BlockedCustomerError(check.message)

    async def block(
        self,
        identity: CustomerIdentity,
        reason: str,
        actor: str,
        db: AsyncSession,
        expires_at: datetime | None = None,
        custom_message: str | None = None,
    ) -> BlockedCustomer:
        if not actor:
            raise AdminRequiredError()
        identity = identity.normalized()
        if identity.is_empty:
            raise InvalidIdentityError()
        block = BlockedCustomer(
            id=generate_id(),
            reason=reason.strip(),
            email=identity.email,
            phone=identity.phone,
            device_id=identity.device_id,
            ip_address=identity.ip_address,
            custom_message=(custom_message or "").strip() or None,
            expires_at=expires_at,
            blocked_by=actor,
        )
        try:
            block = await self._repo.insert(block, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Block %s created by %s (expires %s)", block.id, actor, expires_at or "never")
        return block

    async def unblock(self, block_id: str, actor: str, db: AsyncSession) -> BlockedCustomer:
        return await self._update(block_id, actor, db, expire=False)

    async def expire(self, block_id: str, actor: str, db: AsyncSession) -> BlockedCustomer:
        """End the block now, keeping it active for the record."""
        return await self._update(block_id, actor, db, expire=True)

    async def list_active(self, db: AsyncSession) -> list[BlockedCustomer]:
        return await self._repo.list_in_force(utc_now(), db)

    async def _update(
        self, block_id: str, actor: str, db: AsyncSession, *, expire: bool
    ) -> BlockedCustomer:
        if not actor:
            raise AdminRequiredError()
        try:
            if expire:
                found = await self._repo.set_expiry(block_id, utc_now(), db)
            else:
                found = await self._repo.deactivate(block_id, db)
            if not found:
                raise BlockNotFoundError(block_id)
            block = await self._repo.get(block_id, db)
            if block is None:
                raise BlockNotFoundError(block_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Block %s %s by %s", block_id, "expired" if expire else "lifted", actor)
        return block
