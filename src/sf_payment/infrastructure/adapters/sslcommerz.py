"""SSLCommerz hosted checkout adapter.

The session is opened with a form-encoded POST; the customer's browser (and
the IPN listener) come back to our callback with a `val_id`, which is then
checked against the validation API. `tran_id` is the order number; order id,
nonce and linkage version ride in `value_a` / `value_b` / `value_c`.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from src.sf_common.enums import PaymentMethod, VerifiedPaymentState
from src.sf_common.errors import AdapterError, PaymentDeclinedError
from src.sf_common.money import to_gateway_amount
from src.sf_order.domain.models import Order
from src.sf_payment.domain.models import (
    CallbackLinkage,
    CallbackPayload,
    PaymentInitiation,
    VerificationResult,
)
from src.sf_payment.infrastructure.adapters.base import (
    FALLBACK_EMAIL,
    HttpGatewayAdapter,
    HttpPolicy,
    first_value,
    parse_amount,
)

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://sandbox.sslcommerz.com"
LIVE_URL = "https://securepay.sslcommerz.com"

# Only a val_id issued for a real attempt gets a definite answer. The validator
# says INVALID_TRANSACTION for ids it does not know, which proves nothing.
_STATES = {
    "VALID": VerifiedPaymentState.COMPLETED.value,
    "VALIDATED": VerifiedPaymentState.COMPLETED.value,
    "FAILED": VerifiedPaymentState.FAILED.value,
    "CANCELLED": VerifiedPaymentState.FAILED.value,
    "EXPIRED": VerifiedPaymentState.FAILED.value,
    "PENDING": VerifiedPaymentState.PENDING.value,
    "UNATTEMPTED": VerifiedPaymentState.PENDING.value,
}


@dataclass(frozen=True)
class SslCommerzConfig:
    store_id: str
    store_password: str
    callback_url: str
    sandbox: bool = True
    policy: HttpPolicy = field(default_factory=HttpPolicy)

    @property
    def base_url(self) -> str:
        return SANDBOX_URL if self.sandbox else LIVE_URL


class SslCommerzAdapter(HttpGatewayAdapter):
    method = PaymentMethod.SSLCOMMERZ.value
    binds_reference_at_initiation = False

    def __init__(
        self, config: SslCommerzConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        super().__init__(config.policy, config.callback_url, transport)
        self._config = config

    async def initiate(self, order: Order, linkage: CallbackLinkage) -> PaymentInitiation:
        address = order.shipping_address or "N/A"
        form = {
            "store_id": self._config.store_id,
            "store_passwd": self._config.store_password,
            "total_amount": to_gateway_amount(order.total),
            "currency": "BDT",
            "tran_id": order.order_number,
            "success_url": self.callback_url_for(linkage, outcome="success"),
            "fail_url": self.callback_url_for(linkage, outcome="fail"),
            "cancel_url": self.callback_url_for(linkage, outcome="cancel"),
            "ipn_url": self.callback_url_for(linkage, outcome="ipn"),
            "cus_name": order.customer_name,
            "cus_email": order.customer_email or FALLBACK_EMAIL,
            "cus_phone": order.customer_phone,
            "cus_add1": address,
            "cus_city": "Dhaka",
            "cus_country": "Bangladesh",
            "shipping_method": order.shipping_method or "Courier",
            "ship_name": order.customer_name,
            "ship_add1": address,
            "ship_city": "Dhaka",
            "ship_postcode": "1000",
            "ship_country": "Bangladesh",
            "product_name": f"Order {order.order_number}",
            "product_category": "General",
            "product_profile": "physical-goods",
            "num_of_item": str(max(len(order.items), 1)),
            "value_a": linkage.order_id,
            "value_b": linkage.nonce,
            "value_c": str(linkage.v),
        }
        _, data = await self._call(
            "POST", f"{self._config.base_url}/gwprocess/v4/api.php", data=form
        )
        if data.get("status") != "SUCCESS" or not data.get("GatewayPageURL"):
            raise PaymentDeclinedError(self.method, str(data.get("failedreason") or "init failed"))
        logger.info(
            "SSLCommerz session %s opened for order %s", data.get("sessionkey"), order.order_number
        )
        # The session key is not a val_id; the reference arrives with the callback.
        return PaymentInitiation(
            method=self.method,
            linkage=linkage,
            payment_url=str(data["GatewayPageURL"]),
        )

    async def verify(self, reference: str) -> VerificationResult:
        _, data = await self._call(
            "GET",
            f"{self._config.base_url}/validator/api/validationserverAPI.php",
            params={
                "val_id": reference,
                "store_id": self._config.store_id,
                "store_passwd": self._config.store_password,
                "format": "json",
            },
            retry=True,
        )
        status = data.get("status")
        if not status:
            raise AdapterError(self.method, "validation response without status")
        state = _STATES.get(str(status))
        if state is None:
            logger.warning("SSLCommerz validator answered %s for val_id %s", status, reference)
            raise AdapterError(self.method, f"validator does not confirm val_id: {status}")
        return VerificationResult(
            state=state,
            reference=reference,
            amount=parse_amount(self.method, data.get("amount")),
            transaction_id=data.get("bank_tran_id"),
            order_linkage=data.get("tran_id"),
            raw=data,
        )

    def parse_callback(self, params: Mapping[str, Any]) -> CallbackPayload:
        linkage = CallbackLinkage.from_params(
            {
                "v": first_value(params, "v", "value_c"),
                "order_id": first_value(params, "order_id", "value_a"),
                "nonce": first_value(params, "nonce", "value_b"),
            }
        )
        return CallbackPayload(
            method=self.method,
            linkage=linkage,
            reference=first_value(params, "val_id"),
            reported_status=first_value(params, "status", "outcome"),
        )
