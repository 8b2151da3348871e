from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from posted.background.tasks import send_invite_email
from posted.core.dependencies import get_current_user_with_provisioning as get_current_user, get_status_cache
from posted.database import get_db
from posted.models.user import User
from posted.schemas.organization import (
    Organization, OrganizationCreate, OrganizationMembership,
    JoinOrganizationRequest, JoinOrganizationResponse,
    InviteRequest, InviteResponse,
)
from posted.services import organization_service
from posted.services.subscription_gate import SubscriptionStatusCache

router = APIRouter()


@router.post("/", response_model=Organization, status_code=status.HTTP_201_CREATED)
async def create_organization(
    organization_in: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
    status_cache: SubscriptionStatusCache = Depends(get_status_cache),
    current_user: User = Depends(get_current_user)
):
    """
    Create a new organization with the current user as its owner.
    """
    organization = await organization_service.create_organization(db, organization_in, owner=current_user)
    status_cache.invalidate_session(current_user.id)
    return organization


@router.get("/", response_model=List[OrganizationMembership])
async def list_organizations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List the organizations the current user belongs to.
    """
    memberships = await organization_service.list_memberships(db, current_user.id)
    return [
        OrganizationMembership(organization=Organization.model_validate(org), role=role)
        for org, role in memberships
    ]


@router.post("/join", response_model=JoinOrganizationResponse)
async def join_organization(
    body: JoinOrganizationRequest,
    db: AsyncSession = Depends(get_db),
    status_cache: SubscriptionStatusCache = Depends(get_status_cache),
    current_user: User = Depends(get_current_user)
):
    org = await organization_service.join_organization(db, current_user, body.invite_code)
    status_cache.invalidate_session(current_user.id)
    return JoinOrganizationResponse(organization_name=org.name)


@router.post("/invite", response_model=InviteResponse, status_code=status.HTTP_202_ACCEPTED)
async def invite_member(
    body: InviteRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Email the organization's invite code. Delivery happens in the worker.
    """
    org = await organization_service.require_membership(db, current_user, body.organization_id)
    send_invite_email.delay(
        to=body.email,
        org_name=org.name,
        invite_code=org.invite_code,
        inviter_name=body.inviter_name or current_user.full_name,
    )
    return InviteResponse()
