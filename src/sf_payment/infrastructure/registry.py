"""Gateway registry: payment_method -> adapter.

Built once from settings at first use. Each adapter receives its own frozen
config; none of them reads the global settings object during a call.
"""
import logging

from config.settings import Settings, settings
from src.sf_common.enums import PaymentMethod
from src.sf_common.errors import GatewayNotConfiguredError
from src.sf_payment.domain.gateway import PaymentGatewayProtocol
from src.sf_payment.infrastructure.adapters.base import HttpPolicy
from src.sf_payment.infrastructure.adapters.bkash import BkashAdapter, BkashConfig
from src.sf_payment.infrastructure.adapters.cod import CashOnDeliveryAdapter
from src.sf_payment.infrastructure.adapters.sslcommerz import SslCommerzAdapter, SslCommerzConfig
from src.sf_payment.infrastructure.adapters.uddoktapay import UddoktaPayAdapter, UddoktaPayConfig

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/v1/payments/{method}/callback"


class GatewayRegistry:
    def __init__(self, gateways: list[PaymentGatewayProtocol]) -> None:
        self._gateways = {g.method: g for g in gateways}

    def get(self, method: str) -> PaymentGatewayProtocol:
        gateway = self._gateways.get(method)
        if gateway is None:
            raise GatewayNotConfiguredError(method)
        return gateway

    def methods(self) -> list[str]:
        return sorted(self._gateways)


def build_registry(cfg: Settings) -> GatewayRegistry:
    """Instantiate the adapters enabled in `cfg`. Cash on delivery is always on."""
    policy = HttpPolicy(
        timeout_seconds=cfg.GATEWAY_TIMEOUT_SECONDS,
        verify_attempts=cfg.GATEWAY_VERIFY_ATTEMPTS,
    )
    api_url = cfg.PUBLIC_API_URL.rstrip("/")

    def callback_url(method: PaymentMethod) -> str:
        return api_url + CALLBACK_PATH.format(method=method.value)

    gateways: list[PaymentGatewayProtocol] = [CashOnDeliveryAdapter()]
    if cfg.BKASH_ENABLED:
        gateways.append(
            BkashAdapter(
                BkashConfig(
                    app_key=cfg.BKASH_APP_KEY,
                    app_secret=cfg.BKASH_APP_SECRET,
                    username=cfg.BKASH_USERNAME,
                    password=cfg.BKASH_PASSWORD,
                    callback_url=callback_url(PaymentMethod.BKASH),
                    sandbox=cfg.BKASH_SANDBOX,
                    policy=policy,
                )
            )
        )
    if cfg.SSLCOMMERZ_ENABLED:
        gateways.append(
            SslCommerzAdapter(
                SslCommerzConfig(
                    store_id=cfg.SSLCOMMERZ_STORE_ID,
                    store_password=cfg.SSLCOMMERZ_STORE_PASSWORD,
                    callback_url=callback_url(PaymentMethod.SSLCOMMERZ),
                    sandbox=cfg.SSLCOMMERZ_SANDBOX,
                    policy=policy,
                )
            )
        )
    if cfg.UDDOKTAPAY_ENABLED:
        if not cfg.UDDOKTAPAY_BASE_URL or not cfg.UDDOKTAPAY_API_KEY:
            logger.error("UddoktaPay enabled without base URL / API key; gateway left off")
        else:
            gateways.append(
                UddoktaPayAdapter(
                    UddoktaPayConfig(
                        base_url=cfg.UDDOKTAPAY_BASE_URL,
                        api_key=cfg.UDDOKTAPAY_API_KEY,
                        callback_url=callback_url(PaymentMethod.UDDOKTAPAY),
                        policy=policy,
                    )
                )
            )
    registry = GatewayRegistry(gateways)
    logger.info("Payment gateways enabled: %s", ", ".join(registry.methods()))
    return registry


_registry: GatewayRegistry | None = None


def get_gateway_registry() -> GatewayRegistry:
    global _registry  # noqa: PLW0603
    if _registry is None:
        _registry = build_registry(settings)
    return _registry
