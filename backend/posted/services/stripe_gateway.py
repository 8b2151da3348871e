"""
Stripe API gateway.

A thin async facade over `stripe.StripeClient` that hands plain dicts and
strings back to the services, so the rest of the code never depends on
StripeObject internals. One instance is built lazily per process by
`AsyncContext.stripe_gateway`; tests substitute a fake through the
`get_stripe_gateway` dependency.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import stripe

from posted.core.exceptions import SignatureInvalid, UpstreamFailure

logger = logging.getLogger(__name__)


def period_end_of(subscription) -> Optional[int]:
    """
    Newer API versions moved current_period_end from the subscription onto its items.
    """
    value = subscription.get("current_period_end")
    if value:
        return value
    items = (subscription.get("items") or {}).get("data") or []
    if items:
        return items[0].get("current_period_end")
    return None


class StripeGateway:
    def __init__(self, client: stripe.StripeClient, webhook_secret: str, tolerance: int = 300):
        self.client = client
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def parse_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header and decode the event body.
        Raises SignatureInvalid without touching anything else.
        """
        if not signature:
            raise SignatureInvalid("No signature")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.tolerance)
            event = json.loads(body)
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise SignatureInvalid() from e
        except (UnicodeDecodeError, ValueError) as e:
            logger.warning("Webhook payload could not be decoded: %s", e)
            raise SignatureInvalid("Invalid payload") from e
        if not isinstance(event, dict) or "type" not in event:
            raise SignatureInvalid("Invalid payload")
        return event

    # -------------------------------------------------------------------------
    # Customers, checkout and portal
    # -------------------------------------------------------------------------

    async def create_customer(self, email: str, metadata: Dict[str, str]) -> str:
        try:
            customer = await self.client.customers.create_async(params={"email": email, "metadata": metadata})
        except stripe.StripeError as e:
            logger.error("Stripe customer creation failed: %s", e)
            raise UpstreamFailure("Failed to create billing account") from e
        return customer.id

    async def create_invoice_item(self, customer_id: str, amount: int, currency: str, description: str) -> str:
        try:
            item = await self.client.invoice_items.create_async(params={
                "customer": customer_id,
                "amount": amount,
                "currency": currency,
                "description": description,
            })
        except stripe.StripeError as e:
            logger.error("Stripe invoice item creation failed for %s: %s", customer_id, e)
            raise UpstreamFailure("Failed to create checkout session") from e
        return item.id

    async def create_checkout_session(self, params: Dict[str, Any]) -> str:
        try:
            session = await self.client.checkout.sessions.create_async(params=params)
        except stripe.StripeError as e:
            logger.error("Stripe checkout session creation failed: %s", e)
            raise UpstreamFailure("Failed to create checkout session") from e
        return session.url

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        try:
            session = await self.client.billing_portal.sessions.create_async(params={
                "customer": customer_id,
                "return_url": return_url,
            })
        except stripe.StripeError as e:
            logger.error("Stripe portal session creation failed for %s: %s", customer_id, e)
            raise UpstreamFailure("Failed to create portal session") from e
        return session.url

    # -------------------------------------------------------------------------
    # Subscriptions and invoices
    # -------------------------------------------------------------------------

    async def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        try:
            subscription = await self.client.subscriptions.retrieve_async(subscription_id)
        except stripe.StripeError as e:
            logger.error("Stripe subscription %s could not be retrieved: %s", subscription_id, e)
            raise UpstreamFailure("Failed to retrieve subscription") from e
        return {
            "id": subscription.id,
            "status": subscription.status,
            "trial_end": subscription.get("trial_end"),
            "current_period_end": period_end_of(subscription),
            "metadata": dict(subscription.get("metadata") or {}),
        }

    async def list_invoices(self, customer_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            invoices = await self.client.invoices.list_async(params={"customer": customer_id, "limit": limit})
        except stripe.StripeError as e:
            logger.error("Stripe invoices could not be listed for %s: %s", customer_id, e)
            raise UpstreamFailure("Failed to fetch invoices") from e
        return [
            {
                "id": inv.id,
                "number": inv.get("number"),
                "created": inv.created,
                "amount_paid": inv.get("amount_paid") or 0,
                "currency": inv.get("currency") or "",
                "status": inv.get("status"),
                "invoice_pdf": inv.get("invoice_pdf"),
            }
            for inv in invoices.data
        ]
