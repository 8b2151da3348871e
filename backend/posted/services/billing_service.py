"""
Billing service for Stripe operations.

This service provides a clean interface for:
- Creating Stripe checkout sessions (trial subscription signup)
- Opening the Stripe Customer Portal (self-service management)
- Listing recent invoices for the billing page

We use Stripe Checkout (not custom payment forms), so no card data ever
reaches this service. Subscription state is written only by the webhook
reconciler, never here.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from posted.core.config import settings
from posted.core.exceptions import NoBillingAccount, SubscriptionAlreadyActive
from posted.models.organization import Organization, has_active_subscription
from posted.models.user import User
from posted.services import organization_service
from posted.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"eur": "€"}


def format_amount(amount_minor: int, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.lower(), currency.upper())
    return f"{amount_minor / 100:.2f}{symbol}"


class BillingService:
    """
    Usage:
        service = BillingService(db, gateway)
        checkout_url = await service.start_checkout(user, organization_id, origin)
    """

    def __init__(self, db: AsyncSession, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    async def ensure_customer(self, org: Organization, user: User) -> str:
        """
        Returns the organization's Stripe customer, creating it on first use.
        """
        if org.stripe_customer_id:
            return org.stripe_customer_id

        customer_id = await self.gateway.create_customer(
            email=user.email,
            metadata={"organization_id": str(org.id), "user_id": str(user.id)},
        )
        stored = await organization_service.claim_stripe_customer(self.db, org.id, customer_id)
        logger.info("Created Stripe customer %s for org %s", stored, org.id)
        return stored

    async def start_checkout(self, user: User, organization_id: uuid.UUID, origin: str) -> str:
        """
        Opens a Checkout session for a trial subscription with upfront card collection.

        Returns the checkout session URL to redirect the user to.
        """
        org = await organization_service.require_membership(self.db, user, organization_id)

        if has_active_subscription(org.subscription_status):
            raise SubscriptionAlreadyActive()

        customer_id = await self.ensure_customer(org, user)

        # One-time trial activation fee, billed on the first invoice.
        await self.gateway.create_invoice_item(
            customer_id=customer_id,
            amount=settings.TRIAL_FEE_AMOUNT,
            currency=settings.TRIAL_FEE_CURRENCY,
            description="Trial activation fee",
        )

        metadata = {"organization_id": str(organization_id)}
        url = await self.gateway.create_checkout_session({
            "customer": customer_id,
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": settings.STRIPE_PRICE_ID, "quantity": 1}],
            "subscription_data": {
                "trial_period_days": settings.TRIAL_PERIOD_DAYS,
                "metadata": metadata,
            },
            "success_url": f"{origin}/success",
            "cancel_url": f"{origin}/subscribe?canceled=true",
            "metadata": metadata,
            "payment_method_collection": "always",
            "allow_promotion_codes": True,
        })
        logger.info("Checkout session opened for org %s", organization_id)
        return url

    async def open_billing_portal(self, user: User, organization_id: uuid.UUID, origin: str) -> str:
        org = await organization_service.require_membership(self.db, user, organization_id)
        if not org.stripe_customer_id:
            raise NoBillingAccount()
        return await self.gateway.create_portal_session(org.stripe_customer_id, return_url=f"{origin}/billing")

    async def list_invoices(self, user: User, organization_id: uuid.UUID) -> List[dict]:
        org = await organization_service.require_membership(self.db, user, organization_id)
        if not org.stripe_customer_id:
            return []

        invoices = await self.gateway.list_invoices(org.stripe_customer_id, limit=10)
        return [
            {
                "id": inv["id"],
                "number": inv["number"],
                "date": datetime.fromtimestamp(inv["created"], tz=timezone.utc).isoformat(),
                "amount": format_amount(inv["amount_paid"], inv["currency"]),
                "status": inv["status"],
                "url": inv["invoice_pdf"],
            }
            for inv in invoices
        ]
