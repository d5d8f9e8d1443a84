"""Tests for the hosted-gateway adapters over httpx.MockTransport."""

import json
from collections.abc import Callable
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from src.sf_common.errors import (
    AdapterError,
    GatewayUnavailableError,
    PaymentDeclinedError,
    PaymentLinkageError,
)
from src.sf_order.domain.models import Order, OrderItem
from src.sf_payment.domain.models import CallbackLinkage
from src.sf_payment.infrastructure.adapters.base import HttpPolicy
from src.sf_payment.infrastructure.adapters.bkash import BkashAdapter, BkashConfig
from src.sf_payment.infrastructure.adapters.cod import CashOnDeliveryAdapter
from src.sf_payment.infrastructure.adapters.sslcommerz import SslCommerzAdapter, SslCommerzConfig
from src.sf_payment.infrastructure.adapters.uddoktapay import UddoktaPayAdapter, UddoktaPayConfig

POLICY = HttpPolicy(timeout_seconds=1.0, verify_attempts=3, retry_backoff=0)
CALLBACK = "https://api.shop.test/api/v1/payments/{}/callback"
LINKAGE = CallbackLinkage(order_id="o-1", nonce="n-1")

Handler = Callable[[httpx.Request], httpx.Response]


def _order() -> Order:
    return Order(
        id="o-1",
        order_number="ORD-20260301-1234",
        customer_name="Rahim Uddin",
        customer_phone="01711000000",
        payment_method="bkash",
        order_source="checkout",
        shipping_fee=10000,
        items=[
            OrderItem(
                id="i-1",
                order_id="o-1",
                product_id="p-1",
                product_name="Cotton Panjabi",
                quantity=2,
                unit_price=45000,
            )
        ],
    )


class Recorder:
    """MockTransport handler that answers by URL path and keeps every request."""

    def __init__(self, routes: dict[str, Handler]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, handler in self.routes.items():
            if request.url.path.endswith(suffix):
                return handler(request)
        return httpx.Response(404, json={"message": "no route"})

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


def _json(payload: object, status: int = 200) -> Handler:
    return lambda request: httpx.Response(status, json=payload)


# ---------------------------------------------------------------------------
# bKash
# ---------------------------------------------------------------------------

_TOKEN = {"statusCode": "0000", "statusMessage": "Successful", "id_token": "tok-1"}


def _bkash(routes: dict[str, Handler]) -> tuple[BkashAdapter, Recorder]:
    recorder = Recorder({"/token/grant": _json(_TOKEN), **routes})
    adapter = BkashAdapter(
        BkashConfig(
            app_key="key",
            app_secret="secret",
            username="merchant",
            password="pw",
            callback_url=CALLBACK.format("bkash"),
            policy=POLICY,
        ),
        transport=httpx.MockTransport(recorder),
    )
    return adapter, recorder


class TestBkashAdapter:
    async def test_initiate(self) -> None:
        adapter, recorder = _bkash(
            {
                "/checkout/create": _json(
                    {
                        "statusCode": "0000",
                        "paymentID": "TR0011",
                        "bkashURL": "https://sandbox.bka.sh/pay/TR0011",
                    }
                )
            }
        )
        initiation = await adapter.initiate(_order(), LINKAGE)

        assert initiation.reference == "TR0011"
        assert initiation.payment_url == "https://sandbox.bka.sh/pay/TR0011"
        create = recorder.requests[-1]
        body = json.loads(create.content)
        assert body["amount"] == "1000.00"
        assert body["merchantInvoiceNumber"] == "ORD-20260301-1234"
        query = parse_qs(urlsplit(body["callbackURL"]).query)
        assert query == {"v": ["1"], "order_id": ["o-1"], "nonce": ["n-1"]}
        assert create.headers["Authorization"] == "tok-1"

    async def test_initiate_declined(self) -> None:
        adapter, _ = _bkash(
            {"/checkout/create": _json({"statusCode": "2001", "statusMessage": "Invalid App Key"})}
        )
        with pytest.raises(PaymentDeclinedError):
            await adapter.initiate(_order(), LINKAGE)

    @pytest.mark.parametrize(
        ("transaction_status", "state"),
        [("Completed", "COMPLETED"), ("Failed", "FAILED"), ("Initiated", "PENDING")],
    )
    async def test_verify_states(self, transaction_status: str, state: str) -> None:
        adapter, _ = _bkash(
            {
                "/payment/status": _json(
                    {
                        "statusCode": "0000",
                        "transactionStatus": transaction_status,
                        "amount": "1000.00",
                        "trxID": "9C1",
                        "merchantInvoiceNumber": "ORD-20260301-1234",
                    }
                )
            }
        )
        result = await adapter.verify("TR0011")
        assert result.state == state
        assert result.amount == 100000
        assert result.transaction_id == "9C1"
        assert result.order_linkage == "ORD-20260301-1234"

    async def test_verify_retries_transport_errors(self) -> None:
        calls = {"n": 0}

        def flaky(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ConnectError("reset", request=request)
            return httpx.Response(
                200, json={"statusCode": "0000", "transactionStatus": "Completed", "amount": "10"}
            )

        adapter, _ = _bkash({"/payment/status": flaky})
        result = await adapter.verify("TR0011")
        assert result.state == "COMPLETED"
        assert calls["n"] == 2

    async def test_timeout_is_unavailable_not_failure(self) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        adapter, recorder = _bkash({"/payment/status": timeout})
        with pytest.raises(GatewayUnavailableError):
            await adapter.verify("TR0011")
        assert recorder.paths().count("/v1.2.0-beta/tokenized/checkout/payment/status") == 3

    async def test_server_error_is_unavailable(self) -> None:
        adapter, _ = _bkash({"/payment/status": _json({"message": "oops"}, status=503)})
        with pytest.raises(GatewayUnavailableError):
            await adapter.verify("TR0011")

    async def test_non_json_body(self) -> None:
        adapter, _ = _bkash({"/payment/status": lambda r: httpx.Response(200, text="<html>")})
        with pytest.raises(AdapterError):
            await adapter.verify("TR0011")

    async def test_finalize_tolerates_already_executed(self) -> None:
        adapter, recorder = _bkash(
            {"/checkout/execute": _json({"statusCode": "2117", "statusMessage": "Already completed"})}
        )
        await adapter.finalize("TR0011")
        assert recorder.paths()[-1].endswith("/checkout/execute")

    def test_parse_callback(self) -> None:
        adapter, _ = _bkash({})
        payload = adapter.parse_callback(
            {"v": "1", "order_id": "o-1", "nonce": "n-1", "paymentID": "TR0011", "status": "success"}
        )
        assert payload.linkage == LINKAGE
        assert payload.reference == "TR0011"
        assert payload.reported_status == "success"

    def test_parse_callback_without_linkage(self) -> None:
        adapter, _ = _bkash({})
        with pytest.raises(PaymentLinkageError):
            adapter.parse_callback({"paymentID": "TR0011"})


# ---------------------------------------------------------------------------
# SSLCommerz
# ---------------------------------------------------------------------------


def _sslcommerz(routes: dict[str, Handler]) -> tuple[SslCommerzAdapter, Recorder]:
    recorder = Recorder(routes)
    adapter = SslCommerzAdapter(
        SslCommerzConfig(
            store_id="store",
            store_password="secret",
            callback_url=CALLBACK.format("sslcommerz"),
            policy=POLICY,
        ),
        transport=httpx.MockTransport(recorder),
    )
    return adapter, recorder


class TestSslCommerzAdapter:
    async def test_initiate_sends_form(self) -> None:
        adapter, recorder = _sslcommerz(
            {
                "/gwprocess/v4/api.php": _json(
                    {
                        "status": "SUCCESS",
                        "GatewayPageURL": "https://sandbox.sslcommerz.com/pay/abc",
                        "sessionkey": "abc",
                    }
                )
            }
        )
        initiation = await adapter.initiate(_order(), LINKAGE)
        assert initiation.payment_url == "https://sandbox.sslcommerz.com/pay/abc"
        assert initiation.reference is None

        form = parse_qs(recorder.requests[0].content.decode())
        assert form["total_amount"] == ["1000.00"]
        assert form["tran_id"] == ["ORD-20260301-1234"]
        assert (form["value_a"], form["value_b"], form["value_c"]) == (["o-1"], ["n-1"], ["1"])
        assert form["cus_email"] == ["customer@example.com"]

    async def test_initiate_failed(self) -> None:
        adapter, _ = _sslcommerz(
            {"/gwprocess/v4/api.php": _json({"status": "FAILED", "failedreason": "Store inactive"})}
        )
        with pytest.raises(PaymentDeclinedError):
            await adapter.initiate(_order(), LINKAGE)

    @pytest.mark.parametrize(
        ("status", "state"),
        [
            ("VALID", "COMPLETED"),
            ("VALIDATED", "COMPLETED"),
            ("FAILED", "FAILED"),
            ("CANCELLED", "FAILED"),
            ("UNATTEMPTED", "PENDING"),
        ],
    )
    async def test_verify_states(self, status: str, state: str) -> None:
        adapter, recorder = _sslcommerz(
            {
                "/validationserverAPI.php": _json(
                    {"status": status, "amount": "1000.00", "tran_id": "ORD-20260301-1234"}
                )
            }
        )
        result = await adapter.verify("VAL-1")
        assert result.state == state
        assert result.amount == 100000
        assert recorder.requests[0].url.params["val_id"] == "VAL-1"

    @pytest.mark.parametrize("status", ["INVALID_TRANSACTION", "SOMETHING_NEW"])
    async def test_unconfirmed_val_id_is_not_a_failure(self, status: str) -> None:
        adapter, _ = _sslcommerz({"/validationserverAPI.php": _json({"status": status})})
        with pytest.raises(AdapterError):
            await adapter.verify("SESS-1")

    async def test_verify_without_status(self) -> None:
        adapter, _ = _sslcommerz({"/validationserverAPI.php": _json({})})
        with pytest.raises(AdapterError):
            await adapter.verify("VAL-1")

    async def test_unparseable_amount(self) -> None:
        adapter, _ = _sslcommerz(
            {"/validationserverAPI.php": _json({"status": "VALID", "amount": "1,000.00"})}
        )
        with pytest.raises(AdapterError):
            await adapter.verify("VAL-1")

    def test_parse_callback_from_value_fields(self) -> None:
        adapter, _ = _sslcommerz({})
        payload = adapter.parse_callback(
            {"value_a": "o-1", "value_b": "n-1", "value_c": "1", "val_id": "VAL-1", "status": "VALID"}
        )
        assert payload.linkage == LINKAGE
        assert payload.reference == "VAL-1"


# ---------------------------------------------------------------------------
# UddoktaPay
# ---------------------------------------------------------------------------


def _uddoktapay(routes: dict[str, Handler]) -> tuple[UddoktaPayAdapter, Recorder]:
    recorder = Recorder(routes)
    adapter = UddoktaPayAdapter(
        UddoktaPayConfig(
            base_url="https://pay.shop.test/",
            api_key="api-key",
            callback_url=CALLBACK.format("uddoktapay"),
            policy=POLICY,
        ),
        transport=httpx.MockTransport(recorder),
    )
    return adapter, recorder


class TestUddoktaPayAdapter:
    async def test_initiate_sends_key_in_header_only(self) -> None:
        adapter, recorder = _uddoktapay(
            {
                "/api/checkout-v2": _json(
                    {"status": True, "payment_url": "https://pay.shop.test/checkout/xyz"}
                )
            }
        )
        initiation = await adapter.initiate(_order(), LINKAGE)
        assert initiation.reference is None
        request = recorder.requests[0]
        assert request.headers["RT-UDDOKTAPAY-API-KEY"] == "api-key"
        body = json.loads(request.content)
        assert "api-key" not in json.dumps(body)
        assert body["metadata"]["order_id"] == "o-1"
        assert body["amount"] == "1000.00"

    async def test_initiate_rejected(self) -> None:
        adapter, _ = _uddoktapay(
            {"/api/checkout-v2": _json({"status": False, "message": "Invalid API key"}, status=401)}
        )
        with pytest.raises(PaymentDeclinedError):
            await adapter.initiate(_order(), LINKAGE)

    @pytest.mark.parametrize(
        ("status", "state"), [("COMPLETED", "COMPLETED"), ("PENDING", "PENDING"), ("ERROR", "FAILED")]
    )
    async def test_verify_states(self, status: str, state: str) -> None:
        adapter, _ = _uddoktapay(
            {
                "/api/verify-payment": _json(
                    {
                        "status": status,
                        "amount": "1000.00",
                        "transaction_id": "T-1",
                        "metadata": {"order_id": "o-1"},
                    }
                )
            }
        )
        result = await adapter.verify("INV-1")
        assert result.state == state
        assert result.order_linkage == "o-1"

    async def test_verify_unknown_status(self) -> None:
        adapter, _ = _uddoktapay({"/api/verify-payment": _json({"status": "WEIRD"})})
        with pytest.raises(AdapterError):
            await adapter.verify("INV-1")

    def test_parse_webhook_body(self) -> None:
        adapter, _ = _uddoktapay({})
        payload = adapter.parse_callback(
            {
                "invoice_id": "INV-1",
                "status": "COMPLETED",
                "metadata": {"v": "1", "order_id": "o-1", "nonce": "n-1"},
            }
        )
        assert payload.linkage == LINKAGE
        assert payload.reference == "INV-1"


class TestCashOnDelivery:
    async def test_initiate_has_no_redirect(self) -> None:
        initiation = await CashOnDeliveryAdapter().initiate(_order(), LINKAGE)
        assert initiation.payment_url is None
        assert initiation.reference is None

    async def test_verify_unsupported(self) -> None:
        with pytest.raises(AdapterError):
            await CashOnDeliveryAdapter().verify("x")

    def test_no_callbacks(self) -> None:
        with pytest.raises(PaymentLinkageError):
            CashOnDeliveryAdapter().parse_callback({})
