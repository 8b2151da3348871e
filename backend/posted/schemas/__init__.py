from .organization import (
    Organization, OrganizationCreate, OrganizationMembership,
    JoinOrganizationRequest, JoinOrganizationResponse,
    InviteRequest, InviteResponse,
)
from .user import User, UserCreate
from .billing import (
    BillingSessionRequest, RedirectResponse,
    InvoiceSummary, InvoiceListResponse,
    WebhookResponse, CheckoutReturnResponse,
)
from .generation import (
    EditImageRequest, EditImageResponse, ImageOut,
    EnhancePromptRequest, EnhancePromptResponse,
)
from .misc import GateResponse, FeedbackRequest, FeedbackResponse
