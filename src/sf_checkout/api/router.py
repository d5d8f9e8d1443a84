# src/sf_checkout/api/router.py
"""Customer checkout REST API."""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_checkout.application.composer import OrderComposer
from src.sf_checkout.application.schemas import (
    CaptureIncompleteRequest,
    CheckoutRequest,
    CheckoutResponse,
    IncompleteOrderResponse,
)
from src.sf_common.database import get_db_session
from src.sf_common.enums import PaymentMethod
from src.sf_common.errors import AdapterError, GatewayUnavailableError, PaymentDeclinedError
from src.sf_common.id_generator import generate_id
from src.sf_common.response import ApiResponse, success_response
from src.sf_order.application.schemas import OrderResponse
from src.sf_payment.application.service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])
_composer = OrderComposer()
_payments = PaymentService()


@router.post("", status_code=201)
async def checkout(
    body: CheckoutRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    ip_address = request.client.host if request.client else None
    order = await _composer.create_from_cart(body.to_cart(ip_address), db)

    response = CheckoutResponse(order=OrderResponse.from_domain(order))
    if order.payment_method != PaymentMethod.COD.value:
        # The order stands even if the gateway is down; the client retries
        # through POST /orders/{id}/payment.
        try:
            initiation = await _payments.initiate(order.id, db)
            response.payment_url = initiation.payment_url
        except (GatewayUnavailableError, PaymentDeclinedError, AdapterError) as exc:
            logger.warning("Payment start failed for %s: %s", order.order_number, exc.message)
            response.payment_error = exc.message
    return success_response(response.model_dump())


@router.post("/incomplete")
async def capture_incomplete(
    body: CaptureIncompleteRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    saved = await _composer.capture_incomplete(body.to_domain(generate_id()), db)
    return success_response(IncompleteOrderResponse.from_domain(saved).model_dump())
