import uuid
from typing import List, Optional
from pydantic import BaseModel

# --- /stripe/create-checkout and /stripe/create-portal ---
class BillingSessionRequest(BaseModel):
    organization_id: uuid.UUID

class RedirectResponse(BaseModel):
    url: str

# --- /stripe/invoices ---
class InvoiceSummary(BaseModel):
    id: str
    number: Optional[str] = None
    date: str
    amount: str
    status: Optional[str] = None
    url: Optional[str] = None

class InvoiceListResponse(BaseModel):
    invoices: List[InvoiceSummary]

# --- /stripe/webhook ---
class WebhookResponse(BaseModel):
    received: bool = True
    event_type: Optional[str] = None
    action: str

# --- /stripe/checkout-return ---
class CheckoutReturnResponse(BaseModel):
    refreshed: bool = True
