"""bKash tokenized checkout adapter.

Flow: token grant -> create (returns bkashURL + paymentID) -> customer pays
-> bKash redirects to our callback with paymentID/status -> execute
(capture) -> payment/status query decides the outcome.
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
    HttpGatewayAdapter,
    HttpPolicy,
    first_value,
    parse_amount,
)

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://tokenized.sandbox.bka.sh/v1.2.0-beta"
LIVE_URL = "https://tokenized.pay.bka.sh/v1.2.0-beta"

_SUCCESS_CODE = "0000"
_COMPLETED = {"Completed"}
_FAILED = {"Failed", "Cancelled", "Expired", "Declined"}


@dataclass(frozen=True)
class BkashConfig:
    app_key: str
    app_secret: str
    username: str
    password: str
    callback_url: str
    sandbox: bool = True
    policy: HttpPolicy = field(default_factory=HttpPolicy)

    @property
    def base_url(self) -> str:
        return SANDBOX_URL if self.sandbox else LIVE_URL


class BkashAdapter(HttpGatewayAdapter):
    method = PaymentMethod.BKASH.value
    binds_reference_at_initiation = True

    def __init__(
        self, config: BkashConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        super().__init__(config.policy, config.callback_url, transport)
        self._config = config

    async def initiate(self, order: Order, linkage: CallbackLinkage) -> PaymentInitiation:
        headers = await self._auth_headers()
        _, data = await self._call(
            "POST",
            f"{self._config.base_url}/tokenized/checkout/create",
            headers=headers,
            json={
                "mode": "0011",
                "payerReference": order.customer_phone or "guest",
                "callbackURL": self.callback_url_for(linkage),
                "amount": to_gateway_amount(order.total),
                "currency": "BDT",
                "intent": "sale",
                "merchantInvoiceNumber": order.order_number,
            },
        )
        if data.get("statusCode") != _SUCCESS_CODE or not data.get("bkashURL"):
            raise PaymentDeclinedError(self.method, str(data.get("statusMessage") or "create failed"))
        payment_id = data.get("paymentID")
        if not payment_id:
            raise AdapterError(self.method, "create response without paymentID")
        logger.info("bKash payment %s created for order %s", payment_id, order.order_number)
        return PaymentInitiation(
            method=self.method,
            linkage=linkage,
            payment_url=str(data["bkashURL"]),
            reference=str(payment_id),
        )

    async def finalize(self, reference: str) -> None:
        """Execute (capture) the payment. The outcome is read back through `verify`."""
        headers = await self._auth_headers()
        _, data = await self._call(
            "POST",
            f"{self._config.base_url}/tokenized/checkout/execute",
            headers=headers,
            json={"paymentID": reference},
        )
        if data.get("statusCode") != _SUCCESS_CODE:
            # Already executed, cancelled by the customer, expired ...
            logger.info(
                "bKash execute for %s answered %s: %s",
                reference, data.get("statusCode"), data.get("statusMessage"),
            )

    async def verify(self, reference: str) -> VerificationResult:
        headers = await self._auth_headers()
        _, data = await self._call(
            "POST",
            f"{self._config.base_url}/tokenized/checkout/payment/status",
            headers=headers,
            json={"paymentID": reference},
            retry=True,
        )
        if data.get("statusCode") != _SUCCESS_CODE:
            raise AdapterError(
                self.method, f"status query answered {data.get('statusCode')}: {data.get('statusMessage')}"
            )
        transaction_status = data.get("transactionStatus")
        if transaction_status in _COMPLETED:
            state = VerifiedPaymentState.COMPLETED.value
        elif transaction_status in _FAILED:
            state = VerifiedPaymentState.FAILED.value
        else:
            state = VerifiedPaymentState.PENDING.value
        return VerificationResult(
            state=state,
            reference=reference,
            amount=parse_amount(self.method, data.get("amount")),
            transaction_id=data.get("trxID"),
            order_linkage=data.get("merchantInvoiceNumber"),
            raw=data,
        )

    def parse_callback(self, params: Mapping[str, Any]) -> CallbackPayload:
        return CallbackPayload(
            method=self.method,
            linkage=CallbackLinkage.from_params(params),
            reference=first_value(params, "paymentID"),
            reported_status=first_value(params, "status"),
        )

    async def _auth_headers(self) -> dict[str, str]:
        _, data = await self._call(
            "POST",
            f"{self._config.base_url}/tokenized/checkout/token/grant",
            headers={
                "Accept": "application/json",
                "username": self._config.username,
                "password": self._config.password,
            },
            json={"app_key": self._config.app_key, "app_secret": self._config.app_secret},
            retry=True,
        )
        token = data.get("id_token")
        if data.get("statusCode") != _SUCCESS_CODE or not token:
            raise AdapterError(self.method, f"token grant failed: {data.get('statusMessage')}")
        return {
            "Accept": "application/json",
            "Authorization": str(token),
            "X-APP-Key": self._config.app_key,
        }

