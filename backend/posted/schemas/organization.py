import uuid
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field

# Base properties
class OrganizationBase(BaseModel):
    name: str = Field(min_length=1)

# Properties to receive on creation
class OrganizationCreate(OrganizationBase):
    pass

# Properties stored in DB
class OrganizationInDB(OrganizationBase):
    id: uuid.UUID
    slug: str | None = None
    max_seats: int
    credits: int
    invite_code: str
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    subscription_status: str
    subscription_current_period_end: datetime | None = None
    trial_ends_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

# Properties to return to client
class Organization(OrganizationInDB):
    pass

# An organization as seen by one of its members
class OrganizationMembership(BaseModel):
    organization: Organization
    role: str


# --- /organizations/join ---
class JoinOrganizationRequest(BaseModel):
    invite_code: str = Field(min_length=1)

class JoinOrganizationResponse(BaseModel):
    success: bool = True
    organization_name: str


# --- /organizations/invite ---
class InviteRequest(BaseModel):
    email: EmailStr
    organization_id: uuid.UUID
    inviter_name: str | None = None

class InviteResponse(BaseModel):
    queued: bool = True
