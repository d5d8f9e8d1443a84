"""Shared HTTP plumbing for hosted-gateway adapters.

Error mapping every adapter follows:
  - timeout / connection failure  -> GatewayUnavailableError (outcome unknown)
  - provider 5xx                  -> GatewayUnavailableError
  - body that is not a JSON object -> AdapterError
Verification calls are pure queries and are retried on transport errors
with exponential backoff; initiation is never retried because it opens a
payment on the provider side.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.sf_common.errors import AdapterError, GatewayUnavailableError
from src.sf_common.money import from_gateway_amount
from src.sf_payment.domain.models import CallbackLinkage

logger = logging.getLogger(__name__)

# Some providers insist on an email; guest checkout may not have one.
FALLBACK_EMAIL = "customer@example.com"


@dataclass(frozen=True)
class HttpPolicy:
    timeout_seconds: float = 10.0
    verify_attempts: int = 3
    retry_backoff: float = 0.5


class HttpGatewayAdapter:
    method: str = ""
    binds_reference_at_initiation: bool = False

    def __init__(
        self,
        policy: HttpPolicy,
        callback_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._policy = policy
        self._callback_url = callback_url
        self._transport = transport

    def callback_url_for(self, linkage: CallbackLinkage, **extra: str) -> str:
        """Our callback endpoint with the linkage in the query string."""
        params = {**linkage.to_params(), **extra}
        separator = "&" if "?" in self._callback_url else "?"
        return f"{self._callback_url}{separator}{urlencode(params)}"

    async def finalize(self, reference: str) -> None:
        return None

    async def _call(
        self,
        http_method: str,
        url: str,
        *,
        retry: bool = False,
        **kwargs: Any,
    ) -> tuple[int, dict[str, Any]]:
        attempts = self._policy.verify_attempts if retry else 1
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=self._policy.retry_backoff, max=10),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    async with httpx.AsyncClient(
                        timeout=self._policy.timeout_seconds, transport=self._transport
                    ) as client:
                        response = await client.request(http_method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out after %d attempt(s)", self.method, _path(url), attempts)
            raise GatewayUnavailableError(self.method, f"timeout: {exc!r}") from exc
        except httpx.TransportError as exc:
            logger.warning("%s %s unreachable: %r", self.method, _path(url), exc)
            raise GatewayUnavailableError(self.method, repr(exc)) from exc

        logger.info("%s %s -> HTTP %d", self.method, _path(url), response.status_code)
        if response.status_code >= 500:
            raise GatewayUnavailableError(self.method, f"HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise AdapterError(self.method, f"non-JSON body (HTTP {response.status_code})") from exc
        if not isinstance(payload, dict):
            raise AdapterError(self.method, f"expected a JSON object, got {type(payload).__name__}")
        return response.status_code, payload


def first_value(params: Mapping[str, Any], *keys: str) -> str | None:
    """First non-empty value among `keys`, as a string."""
    for key in keys:
        value = params.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def parse_amount(method: str, raw: Any) -> int | None:
    """Provider decimal amount -> minor units; None when absent."""
    if raw in (None, ""):
        return None
    try:
        return from_gateway_amount(raw)
    except ValueError as exc:
        raise AdapterError(method, f"unparseable amount {raw!r}") from exc


def _path(url: str) -> str:
    # Logged without query string; SSLCommerz validation carries credentials there.
    return httpx.URL(url).path
