# src/sf_admin/api/router.py
"""Administrator REST API.

Every endpoint requires an `is_admin` staff user; the user's id is recorded
as the actor on each history entry it causes.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_admin.application.service import OrderAdminService
from src.sf_auth.auth.dependencies import require_admin
from src.sf_auth.user.db_models import StaffUser
from src.sf_blocking.application.schemas import BlockRequest, BlockResponse
from src.sf_blocking.application.service import BlockingGate
from src.sf_checkout.application.composer import OrderComposer
from src.sf_checkout.application.schemas import (
    ConvertIncompleteRequest,
    IncompleteOrderResponse,
    ManualOrderRequest,
)
from src.sf_checkout.domain.models import CartLine
from src.sf_common.database import get_db_session
from src.sf_common.enums import IncompleteOrderStatus
from src.sf_common.response import ApiResponse, success_response
from src.sf_order.application.schemas import (
    AddItemsRequest,
    OrderResponse,
    OrderStatusRequest,
    PaymentStatusRequest,
    ShippingFeeRequest,
    UpdateItemQuantityRequest,
)
from src.sf_order.domain.models import Order
from src.sf_payment.application.reconciliation import ReconciliationEngine
from src.sf_payment.application.refund import RefundWorkflow
from src.sf_payment.application.schemas import ReconcileResponse, RefundRequest

router = APIRouter(prefix="/admin", tags=["admin"])
_orders = OrderAdminService()
_engine = ReconciliationEngine()
_refunds = RefundWorkflow()
_composer = OrderComposer()
_blocking = BlockingGate()

AdminUser = Annotated[StaffUser, Depends(require_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def _order(order: Order) -> ApiResponse:
    return success_response(OrderResponse.from_domain(order).model_dump())


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@router.post("/orders/manual", status_code=201)
async def create_manual_order(
    body: ManualOrderRequest, admin: AdminUser, db: DbSession
) -> ApiResponse:
    return _order(await _composer.create_manual(body.to_cart(), admin.actor_id, db))


@router.get("/orders/{order_id}")
async def get_order(order_id: str, admin: AdminUser, db: DbSession) -> ApiResponse:
    detail = await _orders.get_detail(order_id, db)
    return success_response(
        OrderResponse.from_domain(
            detail.order, detail.status_history, detail.payment_history
        ).model_dump()
    )


@router.post("/orders/{order_id}/status")
async def update_order_status(
    order_id: str, body: OrderStatusRequest, admin: AdminUser, db: DbSession
) -> ApiResponse:
    order = await _engine.set_fulfillment_status(
        order_id, body.status.value, admin.actor_id, body.note, db
    )
    return _order(order)


@router.post("/orders/{order_id}/payment-status")
async def update_payment_status(
    order_id: str, body: PaymentStatusRequest, admin: AdminUser, db: DbSession
) -> ApiResponse:
    order = await _engine.set_payment_status(
        order_id, body.payment_status.value, admin.actor_id, body.note, db
    )
    return _order(order)


@router.post("/orders/{order_id}/refund")
async def refund_order(
    order_id: str, body: RefundRequest, admin: AdminUser, db: DbSession
) -> ApiResponse:
    order = await _refunds.refund(order_id, body.amount, body.reason, admin.actor_id, db)
    return _order(order)


@router.post("/orders/{order_id}/reconcile")
async def reconcile_order(order_id: str, admin: AdminUser, db: DbSession) -> ApiResponse:
    outcome = await _engine.reconcile(order_id, admin.actor_id, db)
    return success_response(ReconcileResponse.from_outcome(outcome).model_dump())


@router.post("/orders/{order_id}/items")
async def add_order_items(
    order_id: str, body: AddItemsRequest, admin: AdminUser, db: DbSession
) -> ApiResponse:
    lines = [
        CartLine(product_id=line.product_id, quantity=line.quantity, variant_id=line.variant_id)
        for line in body.items
    ]
    return _order(await _orders.add_items(order_id, lines, admin.actor_id, db))


@router.delete("/orders/{order_id}/items/{item_id}")
async def remove_order_item(
    order_id: str, item_id: str, admin: AdminUser, db: DbSession
) -> ApiResponse:
    return _order(await _orders.remove_item(order_id, item_id, admin.actor_id, db))


@router.patch("/orders/{order_id}/items/{item_id}")
async def update_order_item(
    order_id: str,
    item_id: str,
    body: UpdateItemQuantityRequest,
    admin: AdminUser,
    db: DbSession,
) -> ApiResponse:
    order = await _orders.update_item_quantity(
        order_id, item_id, body.quantity, admin.actor_id, db
    )
    return _order(order)


@router.put("/orders/{order_id}/shipping-fee")
async def update_shipping_fee(
    order_id: str, body: ShippingFeeRequest, admin: AdminUser, db: DbSession
) -> ApiResponse:
    order = await _orders.update_shipping_fee(order_id, body.shipping_fee, admin.actor_id, db)
    return _order(order)


# ---------------------------------------------------------------------------
# Incomplete orders
# ---------------------------------------------------------------------------


@router.get("/incomplete-orders")
async def list_incomplete_orders(
    admin: AdminUser,
    db: DbSession,
    status: Annotated[IncompleteOrderStatus, Query()] = IncompleteOrderStatus.OPEN,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> ApiResponse:
    snapshots = await _composer.list_incomplete(db, status.value, limit)
    return success_response(
        {"items": [IncompleteOrderResponse.from_domain(s).model_dump() for s in snapshots]}
    )


@router.post("/incomplete-orders/{incomplete_id}/convert", status_code=201)
async def convert_incomplete_order(
    incomplete_id: str,
    admin: AdminUser,
    db: DbSession,
    body: ConvertIncompleteRequest | None = None,
) -> ApiResponse:
    edits = (body or ConvertIncompleteRequest()).to_domain()
    return _order(await _composer.convert_from_incomplete(incomplete_id, edits, admin.actor_id, db))


@router.post("/incomplete-orders/{incomplete_id}/abandon")
async def abandon_incomplete_order(
    incomplete_id: str, admin: AdminUser, db: DbSession
) -> ApiResponse:
    snapshot = await _composer.abandon_incomplete(incomplete_id, admin.actor_id, db)
    return success_response(IncompleteOrderResponse.from_domain(snapshot).model_dump())


# ---------------------------------------------------------------------------
# Blocked customers
# ---------------------------------------------------------------------------


@router.get("/blocked-customers")
async def list_blocked_customers(admin: AdminUser, db: DbSession) -> ApiResponse:
    blocks = await _blocking.list_active(db)
    return success_response({"items": [BlockResponse.from_domain(b).model_dump() for b in blocks]})


@router.post("/blocked-customers", status_code=201)
async def block_customer(body: BlockRequest, admin: AdminUser, db: DbSession) -> ApiResponse:
    block = await _blocking.block(
        body.identity(),
        body.reason,
        admin.actor_id,
        db,
        expires_at=body.expires_at,
        custom_message=body.custom_message,
    )
    return success_response(BlockResponse.from_domain(block).model_dump())


@router.post("/blocked-customers/{block_id}/unblock")
async def unblock_customer(block_id: str, admin: AdminUser, db: DbSession) -> ApiResponse:
    block = await _blocking.unblock(block_id, admin.actor_id, db)
    return success_response(BlockResponse.from_domain(block).model_dump())


@router.post("/blocked-customers/{block_id}/expire")
async def expire_block(block_id: str, admin: AdminUser, db: DbSession) -> ApiResponse:
    block = await _blocking.expire(block_id, admin.actor_id, db)
    return success_response(BlockResponse.from_domain(block).model_dump())
