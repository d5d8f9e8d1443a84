"""In-memory stand-ins for the raw-SQL repositories and the AsyncSession.

FakeSession keeps a committed snapshot of the MemoryStore: `commit()` takes a
new snapshot, `rollback()` restores it, and `begin_nested()` restores the
state seen at savepoint entry when the block raises. That is enough to
observe atomicity (nothing half-written survives an exception) without a
database.
"""
import copy
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError

from src.sf_blocking.domain.models import BlockedCustomer, CustomerIdentity
from src.sf_checkout.domain.models import CatalogProduct, IncompleteOrder, ShippingOption
from src.sf_common.datetime_utils import utc_now
from src.sf_common.enums import IncompleteOrderStatus, VerifiedPaymentState
from src.sf_common.errors import PaymentLinkageError
from src.sf_order.domain.events import OrderEvent
from src.sf_order.domain.models import Order, OrderDraft, OrderItem, StatusHistoryEntry
from src.sf_payment.domain.models import (
    CallbackLinkage,
    CallbackPayload,
    PaymentInitiation,
    VerificationResult,
)


@dataclass
class MemoryStore:
    orders: dict[str, Order] = field(default_factory=dict)
    items: dict[str, OrderItem] = field(default_factory=dict)
    history: list[StatusHistoryEntry] = field(default_factory=list)
    next_history_id: int = 1
    incomplete: dict[str, IncompleteOrder] = field(default_factory=dict)
    blocks: dict[str, BlockedCustomer] = field(default_factory=dict)

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self.__dict__)

    def restore(self, state: dict[str, Any]) -> None:
        self.__dict__.update(copy.deepcopy(state))


class _Savepoint:
    def __init__(self, session: "FakeSession") -> None:
        self._session = session
        self._state: dict[str, Any] = {}

    async def __aenter__(self) -> "_Savepoint":
        self._state = self._session.store.snapshot()
        self._session.savepoints += 1
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        if exc_type is not None:
            self._session.store.restore(self._state)
        return False


class FakeSession:
    def __init__(self, store: MemoryStore | None = None) -> None:
        self.store = store or MemoryStore()
        self._committed = self.store.snapshot()
        self.commits = 0
        self.rollbacks = 0
        self.savepoints = 0

    async def commit(self) -> None:
        self.commits += 1
        self._committed = self.store.snapshot()

    async def rollback(self) -> None:
        self.rollbacks += 1
        self.store.restore(self._committed)

    def begin_nested(self) -> _Savepoint:
        return _Savepoint(self)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class FakeOrderRepository:
    """Implements OrderRepositoryProtocol over `db.store`.

    `steal_versions` makes the next N compare-and-set calls lose, as if a
    concurrent writer had committed first.
    """

    def __init__(self) -> None:
        self.steal_versions = 0
        self.cas_calls = 0

    async def insert_order(self, order: Order, db: FakeSession) -> None:
        store = db.store
        if any(o.order_number == order.order_number for o in store.orders.values()):
            raise IntegrityError("INSERT INTO orders", {}, Exception("uq_orders_order_number"))
        stored = copy.deepcopy(order)
        stored.items = []
        stored.created_at = stored.updated_at = utc_now()
        store.orders[order.id] = stored

    async def insert_items(self, items: list[OrderItem], db: FakeSession) -> None:
        for item in items:
            db.store.items[item.id] = replace(item, created_at=utc_now())

    async def get_by_id(self, order_id: str, db: FakeSession) -> Order | None:
        stored = db.store.orders.get(order_id)
        if stored is None:
            return None
        order = copy.deepcopy(stored)
        order.items = [
            copy.deepcopy(i) for i in db.store.items.values() if i.order_id == order_id
        ]
        return order

    async def order_number_exists(self, order_number: str, db: FakeSession) -> bool:
        return any(o.order_number == order_number for o in db.store.orders.values())

    async def compare_and_set(
        self, order: Order, expected_version: int, db: FakeSession
    ) -> bool:
        self.cas_calls += 1
        stored = db.store.orders[order.id]
        if self.steal_versions > 0:
            self.steal_versions -= 1
            return False
        if stored.version != expected_version:
            return False
        stored.status = order.status
        stored.payment_status = order.payment_status
        stored.subtotal = order.subtotal
        stored.shipping_fee = order.shipping_fee
        stored.total = order.total
        stored.payment_reference = order.payment_reference
        stored.payment_nonce = order.payment_nonce
        stored.version = expected_version + 1
        stored.updated_at = utc_now()
        return True

    async def delete_items(self, order_id: str, item_ids: list[str], db: FakeSession) -> None:
        for item_id in item_ids:
            item = db.store.items.get(item_id)
            if item is not None and item.order_id == order_id:
                del db.store.items[item_id]

    async def update_item_quantity(self, item_id: str, quantity: int, db: FakeSession) -> None:
        db.store.items[item_id].quantity = quantity

    async def append_history(self, entry: StatusHistoryEntry, db: FakeSession) -> None:
        entry.id = db.store.next_history_id
        entry.changed_at = utc_now()
        db.store.next_history_id += 1
        db.store.history.append(copy.deepcopy(entry))

    async def list_history(
        self, order_id: str, axis: str, db: FakeSession
    ) -> list[StatusHistoryEntry]:
        return sorted(
            (
                copy.deepcopy(e)
                for e in db.store.history
                if e.order_id == order_id and e.axis == axis
            ),
            key=lambda e: e.id or 0,
        )


class FakeBlockedCustomerRepository:
    async def find_match(
        self, identity: CustomerIdentity, now: datetime, db: FakeSession
    ) -> BlockedCustomer | None:
        return next((b for b in db.store.blocks.values() if b.matches(identity, now)), None)

    async def insert(self, block: BlockedCustomer, db: FakeSession) -> BlockedCustomer:
        stored = replace(block, created_at=utc_now())
        db.store.blocks[block.id] = stored
        return replace(stored)

    async def get(self, block_id: str, db: FakeSession) -> BlockedCustomer | None:
        block = db.store.blocks.get(block_id)
        return replace(block) if block else None

    async def deactivate(self, block_id: str, db: FakeSession) -> bool:
        block = db.store.blocks.get(block_id)
        if block is None:
            return False
        block.is_active = False
        return True

    async def set_expiry(self, block_id: str, expires_at: datetime, db: FakeSession) -> bool:
        block = db.store.blocks.get(block_id)
        if block is None:
            return False
        block.expires_at = expires_at
        return True

    async def list_in_force(self, now: datetime, db: FakeSession) -> list[BlockedCustomer]:
        return [replace(b) for b in db.store.blocks.values() if b.in_force(now)]


class FakeIncompleteOrderRepository:
    async def upsert_open(self, snapshot: IncompleteOrder, db: FakeSession) -> IncompleteOrder:
        existing = next(
            (
                s
                for s in db.store.incomplete.values()
                if s.session_id == snapshot.session_id
                and s.status == IncompleteOrderStatus.OPEN.value
            ),
            None,
        )
        now = utc_now()
        if existing is None:
            stored = copy.deepcopy(snapshot)
            stored.created_at = stored.updated_at = now
        else:
            stored = copy.deepcopy(snapshot)
            stored.id = existing.id
            stored.created_at = existing.created_at
            stored.updated_at = now
        db.store.incomplete[stored.id] = stored
        return copy.deepcopy(stored)

    async def get(self, incomplete_id: str, db: FakeSession) -> IncompleteOrder | None:
        stored = db.store.incomplete.get(incomplete_id)
        return copy.deepcopy(stored) if stored else None

    async def mark_converted(self, incomplete_id: str, order_id: str, db: FakeSession) -> bool:
        stored = db.store.incomplete.get(incomplete_id)
        if stored is None or stored.status != IncompleteOrderStatus.OPEN.value:
            return False
        stored.status = IncompleteOrderStatus.CONVERTED.value
        stored.converted_order_id = order_id
        return True

    async def mark_abandoned(self, incomplete_id: str, db: FakeSession) -> bool:
        stored = db.store.incomplete.get(incomplete_id)
        if stored is None or stored.status != IncompleteOrderStatus.OPEN.value:
            return False
        stored.status = IncompleteOrderStatus.ABANDONED.value
        return True

    async def list_by_status(
        self, status: str, limit: int, db: FakeSession
    ) -> list[IncompleteOrder]:
        return [
            copy.deepcopy(s) for s in db.store.incomplete.values() if s.status == status
        ][:limit]


class FakeCatalog:
    def __init__(
        self,
        products: list[CatalogProduct] | None = None,
        shipping: list[ShippingOption] | None = None,
    ) -> None:
        self.products = {(p.product_id, p.variant_id): p for p in products or []}
        self.shipping = {s.code: s for s in shipping or []}

    async def get_product(
        self, product_id: str, variant_id: str | None, db: Any
    ) -> CatalogProduct | None:
        return self.products.get((product_id, variant_id))

    async def get_shipping_option(self, code: str, db: Any) -> ShippingOption | None:
        return self.shipping.get(code)


class FakePublisher:
    def __init__(self, fail: bool = False) -> None:
        self.events: list[OrderEvent] = []
        self.fail = fail

    async def publish(self, event: OrderEvent) -> None:
        if self.fail:
            raise ConnectionError("redis down")
        self.events.append(event)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class FakeGateway:
    """Scriptable PaymentGatewayProtocol implementation.

    `results` maps a provider reference to what verify() returns, or to an
    exception verify() raises.
    """

    def __init__(self, method: str = "bkash", binds_reference_at_initiation: bool = True) -> None:
        self.method = method
        self.binds_reference_at_initiation = binds_reference_at_initiation
        self.results: dict[str, VerificationResult | Exception] = {}
        self.initiate_error: Exception | None = None
        self.next_reference = "PAY-1"
        self.initiated: list[CallbackLinkage] = []
        self.finalized: list[str] = []
        self.verified: list[str] = []

    async def initiate(self, order: Order, linkage: CallbackLinkage) -> PaymentInitiation:
        if self.initiate_error is not None:
            raise self.initiate_error
        self.initiated.append(linkage)
        return PaymentInitiation(
            method=self.method,
            linkage=linkage,
            payment_url=f"https://pay.example/{self.method}/{order.order_number}",
            reference=self.next_reference if self.binds_reference_at_initiation else None,
        )

    async def verify(self, reference: str) -> VerificationResult:
        self.verified.append(reference)
        outcome = self.results[reference]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def finalize(self, reference: str) -> None:
        self.finalized.append(reference)

    def parse_callback(self, params: Mapping[str, Any]) -> CallbackPayload:
        if "order_id" not in params:
            raise PaymentLinkageError("missing order_id")
        return CallbackPayload(
            method=self.method,
            linkage=CallbackLinkage.from_params(params),
            reference=params.get("reference"),
            reported_status=params.get("status"),
        )

    def script(
        self,
        reference: str,
        state: VerifiedPaymentState,
        amount: int | None = None,
        transaction_id: str | None = "TXN-1",
    ) -> None:
        self.results[reference] = VerificationResult(
            state=state.value, reference=reference, amount=amount, transaction_id=transaction_id
        )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_draft(
    order_number: str = "ORD-20260301-1234",
    unit_price: int = 45000,
    quantity: int = 2,
    shipping_fee: int = 10000,
    payment_method: str = "bkash",
) -> OrderDraft:
    """Default draft: 2 x 450.00 + 100.00 shipping = 1000.00 (100000 poisha)."""
    return OrderDraft(
        order_number=order_number,
        customer_name="Rahim Uddin",
        customer_phone="01711000000",
        customer_email="rahim@example.com",
        shipping_address="House 1, Road 2, Dhaka",
        payment_method=payment_method,
        order_source="checkout",
        shipping_fee=shipping_fee,
        items=[
            OrderItem(
                id="",
                order_id="",
                product_id="p-1",
                product_name="Cotton Panjabi",
                quantity=quantity,
                unit_price=unit_price,
            )
        ],
    )
