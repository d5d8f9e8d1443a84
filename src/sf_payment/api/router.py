# src/sf_payment/api/router.py
"""Public payment endpoints: start a payment, receive provider callbacks.

Callbacks answer 200 for anything processed, including duplicates and
still-pending payments. Errors map to non-2xx through the AppError handler,
which makes the provider retry. Browser redirects (Accept: text/html) are
sent on to the storefront's payment result page.
"""
from typing import Annotated, Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.sf_common.database import get_db_session
from src.sf_common.errors import PaymentLinkageError
from src.sf_common.response import ApiResponse, success_response
from src.sf_payment.application.reconciliation import ReconciliationEngine
from src.sf_payment.application.schemas import PaymentInitiationResponse, ReconcileResponse
from src.sf_payment.application.service import PaymentService

router = APIRouter(tags=["payments"])
_payments = PaymentService()
_engine = ReconciliationEngine()


@router.post("/orders/{order_id}/payment", response_model=ApiResponse)
async def initiate_payment(
    order_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    initiation = await _payments.initiate(order_id, db)
    return success_response(PaymentInitiationResponse.from_initiation(initiation).model_dump())


@router.api_route("/payments/{gateway}/callback", methods=["GET", "POST"], response_model=None)
async def payment_callback(
    gateway: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse | RedirectResponse:
    params = await _callback_params(request)
    outcome = await _engine.handle_callback(gateway, params, db)
    if "text/html" in request.headers.get("accept", ""):
        query = urlencode({"order_id": outcome.order_id, "payment_status": outcome.payment_status})
        return RedirectResponse(
            f"{settings.PUBLIC_SITE_URL.rstrip('/')}/payment-callback?{query}", status_code=303
        )
    return success_response(ReconcileResponse.from_outcome(outcome).model_dump())


async def _callback_params(request: Request) -> dict[str, Any]:
    """Query string merged with a form or JSON body; body keys win."""
    params: dict[str, Any] = dict(request.query_params)
    if request.method != "POST":
        return params
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as exc:
            raise PaymentLinkageError("malformed JSON callback body") from exc
        if isinstance(body, dict):
            params.update(body)
    elif content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return params
