"""
Stripe Gateway
===============
Payment Intents + Refunds through the official Stripe SDK (StripeClient)
and Stripe-Signature webhook verification via stripe.WebhookSignature.

The SDK's HTTP layer is an httpx.Client so the transport can be swapped
(proxies, tests) the same way as the other outbound clients.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx
import stripe

from config.settings import (
    STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, STRIPE_API_BASE,
    WEBHOOK_TOLERANCE_SECONDS, GATEWAY_TIMEOUT_SECONDS, STRIPE_MAX_NETWORK_RETRIES,
)
from common.exceptions import PaymentGatewayError, ValidationError, WebhookSignatureError
from modules.payment.gateways import (
    BaseGateway, IntentResult, RefundResult, GatewayEvent, register_gateway,
)

logger = logging.getLogger("mimis.gateway.stripe")


class HttpxStripeClient(stripe.HTTPClient):
    """stripe.HTTPClient backed by a synchronous httpx.Client."""
    name = "httpx"

    def __init__(self, client: httpx.Client):
        super().__init__()
        self._client = client

    def request(self, method, url, headers, post_data=None, **kwargs):
        try:
            resp = self._client.request(method, url, headers=headers, content=post_data)
        except httpx.TimeoutException as e:
            raise stripe.APIConnectionError(f"Request to Stripe timed out: {e}", should_retry=True)
        except httpx.HTTPError as e:
            raise stripe.APIConnectionError(f"Could not connect to Stripe: {e}", should_retry=True)
        return resp.content, resp.status_code, resp.headers

    def close(self):
        self._client.close()


def _intent_from(intent) -> IntentResult:
    return IntentResult(
        id=intent.id,
        status=getattr(intent, "status", "") or "",
        client_secret=getattr(intent, "client_secret", None),
        amount=getattr(intent, "amount", None),
        currency=getattr(intent, "currency", None),
    )


@register_gateway
class StripeGateway(BaseGateway):
    name = "stripe"
    label = "Stripe"

    def __init__(
        self,
        secret_key: str = STRIPE_SECRET_KEY,
        webhook_secret: str = STRIPE_WEBHOOK_SECRET,
        api_base: str = STRIPE_API_BASE,
        tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
        client: Optional[httpx.Client] = None,
        max_network_retries: int = STRIPE_MAX_NETWORK_RETRIES,
    ):
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.http_client = HttpxStripeClient(client or httpx.Client(timeout=GATEWAY_TIMEOUT_SECONDS))
        self.stripe = stripe.StripeClient(
            secret_key,
            base_addresses={"api": api_base},
            http_client=self.http_client,
            max_network_retries=max_network_retries,
        )

    # ==========================================
    # API calls
    # ==========================================

    def create_intent(self, amount_minor: int, currency: str, metadata: Dict[str, str]) -> IntentResult:
        params = {
            "amount": amount_minor,
            "currency": currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": {key: str(value) for key, value in metadata.items()},
        }
        intent = self._call("create intent", self.stripe.payment_intents.create, params=params)
        logger.info(f"Stripe intent {intent.id} created for {amount_minor} {currency}")
        return _intent_from(intent)

    def retrieve_intent(self, intent_id: str) -> IntentResult:
        return _intent_from(self._call("retrieve intent", self.stripe.payment_intents.retrieve, intent_id))

    def create_refund(self, intent_id: str) -> RefundResult:
        refund = self._call("refund", self.stripe.refunds.create, params={"payment_intent": intent_id})
        status = getattr(refund, "status", "") or ""
        logger.info(f"Stripe refund {refund.id} for {intent_id}: {status}")
        return RefundResult(id=refund.id, status=status)

    def _call(self, action: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe {action} failed to connect: {e}")
            raise PaymentGatewayError("Could not reach payment provider")
        except stripe.StripeError as e:
            message = e.user_message or str(e) or f"HTTP {e.http_status}"
            logger.error(f"Stripe {action} -> {e.http_status}: {message}")
            raise PaymentGatewayError(f"Payment provider error: {message}")

    # ==========================================
    # Webhooks
    # ==========================================

    def construct_event(self, payload: bytes, signature_header: Optional[str]) -> GatewayEvent:
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        if not signature_header:
            raise WebhookSignatureError("Missing signature header")
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise WebhookSignatureError("Webhook payload is not valid UTF-8")

        try:
            stripe.WebhookSignature.verify_header(text, signature_header, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e))

        try:
            event = json.loads(text)
        except ValueError:
            raise ValidationError("Invalid webhook payload")
        if not isinstance(event, dict):
            raise ValidationError("Invalid webhook payload")

        data = event.get("data")
        obj: Any = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            raise ValidationError("Invalid webhook payload")

        object_id = obj.get("id")
        return GatewayEvent(
            id=str(event.get("id", "")),
            type=str(event.get("type", "")),
            object_id=object_id if isinstance(object_id, str) else None,
            data=obj,
        )

    def close(self):
        self.http_client.close()
