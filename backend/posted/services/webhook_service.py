"""
Stripe webhook reconciliation.

The reconciler is the only writer of an organization's subscription fields.
It reacts to verified Stripe events:

- checkout.session.completed: link the new subscription to the organization
- customer.subscription.created / updated: sync status, period end, trial end
- customer.subscription.deleted: mark canceled, clear period and trial
- invoice.payment_failed: mark past_due

Every handler writes absolute values with a single UPDATE, so a redelivered
event leaves the row exactly as the first delivery did. Events that cannot be
matched to an organization are logged and acknowledged; Stripe would only
redeliver them to the same dead end. Database errors propagate so the
endpoint answers 500 and Stripe retries.

To test locally:
    stripe listen --forward-to localhost:8000/api/v1/stripe/webhook
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from posted.core.exceptions import (
    InternalWriteFailure, MissingOrganizationReference, OrganizationNotFound,
)
from posted.models.organization import Organization, SubscriptionStatus
from posted.services.stripe_gateway import StripeGateway, period_end_of
from posted.services.subscription_gate import SubscriptionStatusCache

logger = logging.getLogger(__name__)

# Map Stripe status to our status
STRIPE_STATUS_MAP = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "incomplete": SubscriptionStatus.NONE,
}


def map_stripe_status(stripe_status: Optional[str]) -> str:
    mapped = STRIPE_STATUS_MAP.get(stripe_status or "")
    if mapped is None:
        logger.warning("Unknown Stripe subscription status %r, storing 'none'", stripe_status)
        return SubscriptionStatus.NONE.value
    return mapped.value


def from_unix(timestamp: Optional[int]) -> Optional[datetime]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _parse_org_id(raw: Any) -> Optional[uuid.UUID]:
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def _id_of(value: Any) -> Optional[str]:
    """Stripe fields may hold an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def subscription_fields(subscription: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "subscription_status": map_stripe_status(subscription.get("status")),
        "subscription_current_period_end": from_unix(period_end_of(subscription)),
        "trial_ends_at": from_unix(subscription.get("trial_end")),
    }


@dataclass
class WebhookOutcome:
    event_type: str
    action: str
    organization_id: Optional[uuid.UUID] = None


class SubscriptionReconciler:

    def __init__(self, db: AsyncSession, gateway: StripeGateway, status_cache: SubscriptionStatusCache):
        self.db = db
        self.gateway = gateway
        self.status_cache = status_cache
        self._handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "customer.subscription.created": self.handle_subscription_updated,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "invoice.payment_failed": self.handle_payment_failed,
        }

    def verify(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Raises SignatureInvalid before anything is read or written."""
        return self.gateway.parse_event(payload, signature)

    async def process(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        event = self.verify(payload, signature)
        return await self.dispatch(event)

    async def dispatch(self, event: Dict[str, Any]) -> WebhookOutcome:
        event_type = event.get("type", "")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled event type: %s", event_type)
            return WebhookOutcome(event_type=event_type, action="ignored")

        obj = (event.get("data") or {}).get("object") or {}
        try:
            organization_id = await handler(obj)
        except (MissingOrganizationReference, OrganizationNotFound) as e:
            logger.error("%s: %s (event %s)", event_type, e.message, event.get("id"))
            return WebhookOutcome(event_type=event_type, action="skipped")

        if organization_id is None:
            return WebhookOutcome(event_type=event_type, action="skipped")
        return WebhookOutcome(event_type=event_type, action="updated", organization_id=organization_id)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def handle_checkout_completed(self, session: Dict[str, Any]) -> Optional[uuid.UUID]:
        """
        The checkout session metadata carries our organization id.
        The subscription itself is fetched for its authoritative status.
        """
        organization_id = _parse_org_id((session.get("metadata") or {}).get("organization_id"))
        if organization_id is None:
            raise MissingOrganizationReference("No organization_id in checkout session metadata")

        subscription_id = _id_of(session.get("subscription"))
        if not subscription_id:
            logger.info("checkout.session.completed for org %s has no subscription", organization_id)
            return None

        subscription = await self.gateway.retrieve_subscription(subscription_id)
        values = {"stripe_subscription_id": subscription_id, **subscription_fields(subscription)}
        await self._write(organization_id, values)

        logger.info("Checkout completed for org %s, subscription: %s", organization_id, subscription_id)
        return organization_id

    async def handle_subscription_updated(self, subscription: Dict[str, Any]) -> uuid.UUID:
        organization_id = _parse_org_id((subscription.get("metadata") or {}).get("organization_id"))
        if organization_id is None:
            organization_id = await self._find_by_subscription(subscription.get("id"))

        await self._write(organization_id, subscription_fields(subscription))

        logger.info("Subscription updated for org %s: %s", organization_id, subscription.get("status"))
        return organization_id

    async def handle_subscription_deleted(self, subscription: Dict[str, Any]) -> uuid.UUID:
        organization_id = await self._find_by_subscription(subscription.get("id"))
        await self._write(organization_id, {
            "subscription_status": SubscriptionStatus.CANCELED.value,
            "subscription_current_period_end": None,
            "trial_ends_at": None,
        })

        logger.info("Subscription canceled for org %s", organization_id)
        return organization_id

    async def handle_payment_failed(self, invoice: Dict[str, Any]) -> Optional[uuid.UUID]:
        subscription_id = _id_of(invoice.get("subscription"))
        if not subscription_id:
            # Newer API versions nest the subscription under the invoice parent.
            details = (invoice.get("parent") or {}).get("subscription_details") or {}
            subscription_id = _id_of(details.get("subscription"))
        if not subscription_id:
            logger.info("invoice.payment_failed for %s is not a subscription invoice", invoice.get("id"))
            return None

        organization_id = await self._find_by_subscription(subscription_id)
        await self._write(organization_id, {"subscription_status": SubscriptionStatus.PAST_DUE.value})

        logger.info("Payment failed for org %s", organization_id)
        return organization_id

    # -------------------------------------------------------------------------
    # Data access
    # -------------------------------------------------------------------------

    async def _find_by_subscription(self, subscription_id: Optional[str]) -> uuid.UUID:
        if not subscription_id:
            raise OrganizationNotFound("Event carries no subscription id")
        result = await self.db.execute(
            select(Organization.id).where(Organization.stripe_subscription_id == subscription_id)
        )
        organization_id = result.scalars().first()
        if organization_id is None:
            raise OrganizationNotFound(f"Could not find organization for subscription: {subscription_id}")
        return organization_id

    async def _write(self, organization_id: uuid.UUID, values: Dict[str, Any]) -> None:
        try:
            result = await self.db.execute(
                update(Organization)
                .where(Organization.id == organization_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Error updating subscription for org %s: %s", organization_id, e)
            raise InternalWriteFailure() from e

        if result.rowcount == 0:
            raise OrganizationNotFound(f"Organization {organization_id} does not exist")
        self.status_cache.invalidate_organization(organization_id)
