"""OrderRepository Protocol: interface contract for the ledger's persistence.

Unit tests inject an in-memory implementation; infrastructure provides the
raw-SQL one.
"""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_order.domain.models import Order, OrderItem, StatusHistoryEntry


class OrderRepositoryProtocol(Protocol):
    async def insert_order(self, order: Order, db: AsyncSession) -> None: ...

    async def insert_items(self, items: list[OrderItem], db: AsyncSession) -> None: ...

    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None: ...

    async def order_number_exists(self, order_number: str, db: AsyncSession) -> bool: ...

    async def compare_and_set(
        self, order: Order, expected_version: int, db: AsyncSession
    ) -> bool:
        """Persist the order's mutable columns iff the stored version still
        equals `expected_version`; bumps the version. False on conflict."""
        ...

    async def delete_items(
        self, order_id: str, item_ids: list[str], db: AsyncSession
    ) -> None: ...

    async def update_item_quantity(
        self, item_id: str, quantity: int, db: AsyncSession
    ) -> None: ...

    async def append_history(self, entry: StatusHistoryEntry, db: AsyncSession) -> None: ...

    async def list_history(
        self, order_id: str, axis: str, db: AsyncSession
    ) -> list[StatusHistoryEntry]: ...
