import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from posted.api.v1.endpoints import ai, billing, feedback, organizations, subscription, users
from posted.core.async_context import close_async_context
from posted.core.config import settings
from posted.core.exceptions import AppError

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_async_context()


app = FastAPI(
    title="Posted API",
    description="Billing, workspace access and AI image generation for Posted.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"error": message, "code": "VALIDATION_FAILED"},
    )


app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
app.include_router(organizations.router, prefix="/api/v1/organizations", tags=["Organizations"])
app.include_router(subscription.router, prefix="/api/v1/subscription", tags=["Subscription"])
app.include_router(ai.router, prefix="/api/v1/ai", tags=["AI"])
app.include_router(feedback.router, prefix="/api/v1/feedback", tags=["Feedback"])

# Stripe: checkout, portal, invoices and the unauthenticated webhook
app.include_router(billing.router, prefix="/api/v1/stripe", tags=["Billing"])


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "ok"}
