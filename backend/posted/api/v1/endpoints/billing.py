import uuid

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from posted.core.dependencies import (
    get_current_user_with_provisioning as get_current_user,
    get_request_origin, get_status_cache, get_stripe_gateway,
)
from posted.database import get_db
from posted.models.user import User
from posted.schemas.billing import (
    BillingSessionRequest, CheckoutReturnResponse, InvoiceListResponse, RedirectResponse, WebhookResponse,
)
from posted.services.billing_service import BillingService
from posted.services.stripe_gateway import StripeGateway
from posted.services.subscription_gate import SubscriptionStatusCache
from posted.services.webhook_service import SubscriptionReconciler

router = APIRouter()


@router.post("/create-checkout", response_model=RedirectResponse)
async def create_checkout(
    body: BillingSessionRequest,
    origin: str = Depends(get_request_origin),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_user)
):
    """
    Open a Stripe Checkout session for a 3-day trial subscription.
    """
    url = await BillingService(db, gateway).start_checkout(current_user, body.organization_id, origin)
    return RedirectResponse(url=url)


@router.post("/create-portal", response_model=RedirectResponse)
async def create_portal(
    body: BillingSessionRequest,
    origin: str = Depends(get_request_origin),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_user)
):
    """
    Open the Stripe Customer Portal for the organization's billing account.
    """
    url = await BillingService(db, gateway).open_billing_portal(current_user, body.organization_id, origin)
    return RedirectResponse(url=url)


@router.get("/invoices", response_model=InvoiceListResponse)
async def list_invoices(
    organization_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    current_user: User = Depends(get_current_user)
):
    invoices = await BillingService(db, gateway).list_invoices(current_user, organization_id)
    return InvoiceListResponse(invoices=invoices)


@router.post("/checkout-return", response_model=CheckoutReturnResponse)
async def checkout_return(
    status_cache: SubscriptionStatusCache = Depends(get_status_cache),
    current_user: User = Depends(get_current_user)
):
    """
    Called by the post-checkout landing page so the next gate check reads
    the subscription again instead of the status cached before checkout.
    """
    status_cache.invalidate_session(current_user.id)
    return CheckoutReturnResponse()


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="stripe-signature"),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    status_cache: SubscriptionStatusCache = Depends(get_status_cache),
):
    """
    Receive Stripe events. No user session: the signature is the authentication.
    """
    # Signature verification needs the raw body, not parsed JSON.
    payload = await request.body()
    outcome = await SubscriptionReconciler(db, gateway, status_cache).process(payload, stripe_signature)
    return WebhookResponse(event_type=outcome.event_type, action=outcome.action)
