import asyncio
import logging
import uuid

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from supabase import AuthError

from posted.core.async_context import get_async_context
from posted.core.config import settings
from posted.core.exceptions import AuthenticationRequired
from posted.core.security import oauth2_scheme
from posted.database import get_db
from posted.models.user import User
from posted.schemas.user import UserCreate
from posted.services.generation_service import FalQueueClient, GenerationPoller
from posted.services.stripe_gateway import StripeGateway
from posted.services.subscription_gate import SubscriptionStatusCache
from posted.services.user_service import create_user_with_organization, get_user_by_supabase_id

logger = logging.getLogger(__name__)


def get_stripe_gateway() -> StripeGateway:
    return get_async_context().stripe_gateway


def get_status_cache() -> SubscriptionStatusCache:
    return get_async_context().status_cache


def get_generation_poller() -> GenerationPoller:
    client = FalQueueClient(
        get_async_context().fal_http_client,
        model_id=settings.FAL_MODEL_ID,
        endpoint=settings.FAL_MODEL_ENDPOINT,
    )
    return GenerationPoller(
        client,
        interval=settings.GENERATION_POLL_INTERVAL,
        max_attempts=settings.GENERATION_MAX_ATTEMPTS,
    )


def get_request_origin(request: Request) -> str:
    """Where Stripe should send the browser back to."""
    return request.headers.get("origin") or settings.APP_ORIGIN


async def resolve_user(db: AsyncSession, token: str) -> User:
    """
    Resolves a Supabase access token to our local user.
    If the user is authenticated with Supabase but doesn't exist in our
    local DB, it creates (provisions) the user and a personal organization.
    """
    supabase_client = get_async_context().supabase_client
    try:
        # The Supabase client is synchronous; keep it off the event loop.
        auth_response = await asyncio.to_thread(supabase_client.auth.get_user, token)
    except AuthError as e:
        logger.info("Auth error: %s", e)
        raise AuthenticationRequired("Could not validate credentials") from e

    auth_user = auth_response.user if auth_response else None
    if not auth_user or not auth_user.email:
        raise AuthenticationRequired("Invalid token")

    supabase_id = uuid.UUID(str(auth_user.id))
    local_user = await get_user_by_supabase_id(db, supabase_id=supabase_id)

    if not local_user:
        logger.info("Provisioning new user for email: %s", auth_user.email)
        user_create_schema = UserCreate(
            supabase_auth_id=supabase_id,
            email=auth_user.email,
            full_name=(auth_user.user_metadata or {}).get("full_name")
        )
        local_user = await create_user_with_organization(db, user_in=user_create_schema)

    return local_user


async def get_current_user_with_provisioning(
    db: AsyncSession = Depends(get_db),
    token: str | None = Depends(oauth2_scheme)
) -> User:
    if not token:
        raise AuthenticationRequired("Not authenticated")
    return await resolve_user(db, token)


async def get_optional_user(
    db: AsyncSession = Depends(get_db),
    token: str | None = Depends(oauth2_scheme)
) -> User | None:
    """
    Like get_current_user_with_provisioning, but anonymous callers get None
    instead of a 401.
    """
    if not token:
        return None
    try:
        return await resolve_user(db, token)
    except AuthenticationRequired:
        return None
