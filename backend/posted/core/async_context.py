# backend/posted/core/async_context.py
import httpx
import stripe
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from supabase import create_client, Client
from supabase.lib.client_options import ClientOptions

from posted.core.config import settings

_async_context = None

class AsyncContext:
    """A container for lazily initialized async resources."""
    def __init__(self):
        self._engine = None
        self._session_factory = None
        self._supabase_client = None
        self._stripe_gateway = None
        self._openrouter_client = None
        self._fal_http_client = None
        self._status_cache = None

    @property
    def engine(self):
        if self._engine is None:
            self._engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)
        return self._engine

    @property
    def session_factory(self):
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)
        return self._session_factory

    @property
    def supabase_client(self) -> Client:
        if self._supabase_client is None:
            self._supabase_client = create_client(
                settings.SUPABASE_URL,
                settings.SUPABASE_ANON_KEY,
                options=ClientOptions(auto_refresh_token=False, persist_session=False)
            )
        return self._supabase_client

    @property
    def stripe_gateway(self):
        if self._stripe_gateway is None:
            # Imported here to keep services -> core imports one-directional.
            from posted.services.stripe_gateway import StripeGateway
            self._stripe_gateway = StripeGateway(
                stripe.StripeClient(settings.STRIPE_SECRET_KEY),
                webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
                tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
            )
        return self._stripe_gateway

    @property
    def openrouter_client(self):
        if self._openrouter_client is None:
            self._openrouter_client = AsyncOpenAI(
                base_url="https://openrouter.ai/api/v1",
                api_key=settings.OPENROUTER_API_KEY
            )
        return self._openrouter_client

    @property
    def fal_http_client(self) -> httpx.AsyncClient:
        if self._fal_http_client is None:
            self._fal_http_client = httpx.AsyncClient(
                base_url=settings.FAL_QUEUE_URL,
                headers={"Authorization": f"Key {settings.FAL_KEY}"},
                timeout=httpx.Timeout(30.0),
            )
        return self._fal_http_client

    @property
    def status_cache(self):
        if self._status_cache is None:
            from posted.services.subscription_gate import SubscriptionStatusCache
            self._status_cache = SubscriptionStatusCache(
                ttl=settings.GATE_STATUS_TTL, max_entries=settings.GATE_CACHE_MAX_ENTRIES
            )
        return self._status_cache

    async def close(self):
        """Gracefully close all open connections."""
        if self._openrouter_client:
            await self._openrouter_client.close()
        if self._fal_http_client:
            await self._fal_http_client.aclose()
        if self._engine:
            await self._engine.dispose()
        # Reset all
        self._engine = None; self._session_factory = None
        self._supabase_client = None; self._stripe_gateway = None
        self._openrouter_client = None; self._fal_http_client = None
        self._status_cache = None

def get_async_context() -> AsyncContext:
    """Process-wide resources, created on first use and shared by every request."""
    global _async_context
    if _async_context is None:
        _async_context = AsyncContext()
    return _async_context

async def close_async_context():
    global _async_context
    if _async_context is not None:
        await _async_context.close()
        _async_context = None
