"""Razorpay payment bridge.

Two stateless operations relay a checkout request to Razorpay and return
the processor's JSON: order creation and subscription creation. The bridge
never persists anything and never retries; every failure is reported to
the caller as a ``PaymentError`` carrying the HTTP status and JSON body to
answer with.

Example:
    >>> bridge = PaymentBridge()
    >>> order = await bridge.create_order({"amount": 499, "plan": "poet"})
    >>> order["amount"]
    49900
"""

import json
import math
import time
from typing import Any

import httpx
from pydantic import ValidationError

from versefeed.config import Settings, settings as default_settings
from versefeed.logging import logger
from versefeed.metrics import (
    errors_total,
    payment_request_duration_seconds,
    payment_requests_total,
)
from versefeed.models import OrderRequest, SubscriptionRequest
from versefeed.utils import epoch_millis, redact_token, safe_get

INVALID_BODY = "Invalid request body"

# =============================================================================
# Custom Exceptions
# =============================================================================


class PaymentError(Exception):
    """Base class for failures answered with ``{"error": ...}``.

    Attributes:
        status_code: HTTP status of the response
        extra: Additional members merged into the JSON body
    """

    status_code = 500
    outcome = "failed"

    def __init__(self, message: str, status_code: int | None = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_body(self) -> dict[str, Any]:
        """JSON body of the error response."""
        return {"error": self.message, **self.extra}


class PaymentRequestError(PaymentError):
    """The inbound request is not valid JSON or lacks required fields."""

    status_code = 400
    outcome = "invalid_request"


class PaymentConfigurationError(PaymentError):
    """Processor credentials are not configured."""

    status_code = 500
    outcome = "misconfigured"


class PaymentProcessorError(PaymentError):
    """Razorpay answered with a non-success status."""

    outcome = "processor_error"


class PaymentGatewayError(PaymentError):
    """Razorpay was unreachable or returned something other than JSON."""

    status_code = 500
    outcome = "failed"


class RazorpayAPIError(Exception):
    """Non-2xx response from the Razorpay REST API."""

    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        self.description = safe_get(body, "error", "description")
        super().__init__(f"HTTP {status_code}: {self.description or 'no description'}")


# =============================================================================
# Async Razorpay Client
# =============================================================================


class RazorpayClient:
    """Async client for the Razorpay REST API.

    Authenticates with HTTP basic auth (key id / key secret). No retries:
    a failed call is reported once and the caller decides what to do.

    Args:
        key_id: Razorpay key id
        key_secret: Razorpay key secret
        api_base: REST base URL (defaults to settings.razorpay_api_base)
        timeout: Overall timeout in seconds
        transport: Custom httpx transport (tests use ``httpx.MockTransport``)

    Example:
        >>> async with RazorpayClient(key_id, key_secret) as client:
        ...     order = await client.post("/orders", {"amount": 100, "currency": "INR"})
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        api_base: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._auth = httpx.BasicAuth(key_id, key_secret)
        self._api_base = (api_base or default_settings.razorpay_api_base).rstrip("/")
        overall = timeout or default_settings.payment_timeout_seconds
        self._timeout = httpx.Timeout(
            timeout=overall,
            connect=min(10.0, overall),
        )
        self._transport = transport

        # Created on first use
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._api_base,
                auth=self._auth,
                timeout=self._timeout,
                transport=self._transport,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def __aenter__(self) -> "RazorpayClient":
        """Context manager entry for resource management."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - ensure cleanup."""
        await self.close()

    async def close(self) -> None:
        """Close all connections and cleanup resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON payload and return the decoded response.

        Raises:
            RazorpayAPIError: Razorpay answered with a non-2xx status
            httpx.HTTPError: Network or timeout failure
            ValueError: Response body is not a JSON object
        """
        client = await self._ensure_client()
        resp = await client.post(path, json=payload)

        # Parsed before the status check: an error body must be JSON too
        body = resp.json()

        if not resp.is_success:
            raise RazorpayAPIError(resp.status_code, body)
        if not isinstance(body, dict):
            raise ValueError(f"Expected a JSON object, got {type(body).__name__}")
        return body


# =============================================================================
# Payload Builders
# =============================================================================


def parse_json_body(raw: bytes) -> Any:
    """Decode a request body, raising ``PaymentRequestError`` if it is not JSON."""
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise PaymentRequestError(INVALID_BODY) from exc


def to_minor_units(amount: float) -> int:
    """Convert rupees to paise, rounding half up.

    Example:
        >>> to_minor_units(4.99)
        499
        >>> to_minor_units(499)
        49900
    """
    return int(math.floor(amount * 100 + 0.5))


def build_order_payload(request: OrderRequest, currency: str | None = None) -> dict[str, Any]:
    """Order body sent to ``POST /orders``."""
    return {
        "amount": to_minor_units(request.amount),
        "currency": request.currency or currency or default_settings.default_currency,
        "receipt": f"rcpt_{int(epoch_millis())}",
        "payment_capture": 1,
        "notes": {
            "plan": request.plan,
            "platform": "web",
            "original_amount": request.amount,
        },
    }


def build_subscription_payload(plan_id: str, total_count: int | None = None) -> dict[str, Any]:
    """Subscription body sent to ``POST /subscriptions``."""
    return {
        "plan_id": plan_id,
        "customer_notify": 1,
        "total_count": total_count or default_settings.subscription_total_count,
        "quantity": 1,
    }


def _validation_details(exc: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]


# =============================================================================
# Payment Bridge
# =============================================================================


class PaymentBridge:
    """Order and subscription creation against Razorpay.

    Credentials are checked on every call, so a process started without
    them still serves everything else and answers payment calls with a
    configuration error.

    Args:
        config: Settings to read credentials and limits from
        transport: Custom httpx transport handed to each ``RazorpayClient``
    """

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or default_settings
        self.transport = transport

    def _client(self) -> RazorpayClient:
        return RazorpayClient(
            key_id=self.config.razorpay_key_id or "",
            key_secret=self.config.razorpay_key_secret or "",
            api_base=self.config.razorpay_api_base,
            timeout=self.config.payment_timeout_seconds,
            transport=self.transport,
        )

    def _log_credentials(self, kind: str) -> None:
        logger.debug(
            f"{kind}: credentials key_id={redact_token(self.config.razorpay_key_id)} "
            f"key_secret={'***' if self.config.razorpay_key_secret else 'NOT SET'}"
        )

    async def _call(self, kind: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            async with self._client() as client:
                return await client.post(path, payload)
        finally:
            payment_request_duration_seconds.labels(kind=kind).observe(
                time.perf_counter() - start
            )

    async def create_order(self, body: Any) -> dict[str, Any]:
        """Create a Razorpay order.

        Args:
            body: Decoded request JSON: ``{amount, currency?, plan?}``, amount in rupees

        Returns:
            The processor's order object

        Raises:
            PaymentRequestError: Body is not an object or fails validation
            PaymentConfigurationError: Credentials missing (no outbound call)
            PaymentProcessorError: Razorpay rejected the order
            PaymentGatewayError: Razorpay unreachable or response malformed
        """
        try:
            try:
                if not isinstance(body, dict):
                    raise PaymentRequestError(INVALID_BODY)
                try:
                    request = OrderRequest.model_validate(body)
                except ValidationError as exc:
                    raise PaymentRequestError(
                        "Invalid order request", details=_validation_details(exc)
                    ) from exc

                self._log_credentials("createOrder")
                if not self.config.has_payment_credentials:
                    logger.error("createOrder: Razorpay credentials are not configured")
                    raise PaymentConfigurationError("Server configuration error")

                try:
                    payload = build_order_payload(request, self.config.default_currency)
                except ArithmeticError as exc:
                    raise PaymentRequestError(
                        "Invalid order request", details=[f"amount: {exc}"]
                    ) from exc
                logger.info(
                    f"createOrder: {payload['amount']} {payload['currency']} "
                    f"for plan {request.plan!r}"
                )
                order = await self._call("order", "/orders", payload)
            except RazorpayAPIError as exc:
                logger.error(f"createOrder: Razorpay API error {exc.status_code}: {exc.body}")
                raise PaymentProcessorError(
                    exc.description or "Failed to create order", exc.status_code
                ) from exc
            except (httpx.HTTPError, ValueError) as exc:
                logger.error(f"createOrder: request to Razorpay failed: {exc}")
                raise PaymentGatewayError("Failed to create payment order") from exc
        except PaymentError as exc:
            self._record_failure("order", exc)
            raise

        payment_requests_total.labels(kind="order", outcome="success").inc()
        logger.info(f"createOrder: created {order.get('id')}")
        return order

    async def create_subscription(self, body: Any) -> dict[str, Any]:
        """Create a Razorpay subscription.

        The plan id is read from ``planId``, ``plan_id`` or ``plan``, first
        non-empty wins.

        Raises:
            PaymentRequestError: No plan id (body echoed as ``receivedBody``)
            PaymentConfigurationError: Credentials missing (no outbound call)
            PaymentProcessorError: Razorpay rejected the subscription
            PaymentGatewayError: Razorpay unreachable or response malformed
        """
        try:
            try:
                logger.debug(f"createSubscription: received body {body!r}")
                plan_id = None
                if isinstance(body, dict):
                    plan_id = SubscriptionRequest.model_validate(body).plan_identifier
                if not plan_id:
                    logger.error(f"createSubscription: missing plan id in {body!r}")
                    raise PaymentRequestError("Plan ID is required", receivedBody=body)

                self._log_credentials("createSubscription")
                if not self.config.has_payment_credentials:
                    logger.error("createSubscription: Razorpay credentials are not configured")
                    raise PaymentConfigurationError("Missing Razorpay credentials")

                payload = build_subscription_payload(
                    plan_id, self.config.subscription_total_count
                )
                logger.info(f"createSubscription: plan {plan_id}")
                subscription = await self._call("subscription", "/subscriptions", payload)
            except RazorpayAPIError as exc:
                logger.error(
                    f"createSubscription: Razorpay API error {exc.status_code}: {exc.body}"
                )
                raise PaymentProcessorError(
                    exc.description or "Subscription creation failed", exc.status_code
                ) from exc
            except (httpx.HTTPError, ValueError) as exc:
                logger.error(f"createSubscription: request to Razorpay failed: {exc}")
                raise PaymentGatewayError(
                    "Subscription request failed", details=str(exc)
                ) from exc
        except PaymentError as exc:
            self._record_failure("subscription", exc)
            raise

        payment_requests_total.labels(kind="subscription", outcome="success").inc()
        logger.info(f"createSubscription: created {subscription.get('id')}")
        return subscription

    @staticmethod
    def _record_failure(kind: str, exc: PaymentError) -> None:
        payment_requests_total.labels(kind=kind, outcome=exc.outcome).inc()
        errors_total.labels(error_type=type(exc).__name__, component="payments").inc()


__all__ = [
    "PaymentBridge",
    "PaymentError",
    "PaymentRequestError",
    "PaymentConfigurationError",
    "PaymentProcessorError",
    "PaymentGatewayError",
    "RazorpayAPIError",
    "RazorpayClient",
    "build_order_payload",
    "build_subscription_payload",
    "parse_json_body",
    "to_minor_units",
]
