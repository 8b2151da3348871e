import logging
import re
import time
import uuid
from typing import List, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from posted.core.config import settings
from posted.core.exceptions import (
    AlreadyMember, Forbidden, InactiveSubscription, InvalidInviteCode, SeatLimitReached,
)
from posted.models.organization import Organization, SubscriptionStatus, has_active_subscription
from posted.models.organization_member import MemberRole, OrganizationMember
from posted.models.user import User
from posted.schemas.organization import OrganizationCreate
from posted.services.subscription_gate import CachedStatus

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"{slug or 'workspace'}-{int(time.time() * 1000)}"


async def create_organization(
    db: AsyncSession, organization_in: OrganizationCreate, owner: User | None = None
) -> Organization:
    """
    Creates a new organization in the database.
    When an owner is given they are added as its first member.
    """
    new_organization = Organization(
        name=organization_in.name,
        slug=slugify(organization_in.name),
        max_seats=settings.DEFAULT_MAX_SEATS,
        subscription_status=SubscriptionStatus.NONE.value,
    )
    db.add(new_organization)
    await db.flush()
    if owner is not None:
        db.add(OrganizationMember(
            organization_id=new_organization.id,
            user_id=owner.id,
            role=MemberRole.OWNER.value,
        ))
    await db.commit()
    await db.refresh(new_organization)
    return new_organization


async def get_membership(
    db: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
) -> Tuple[OrganizationMember, Organization] | None:
    result = await db.execute(
        select(OrganizationMember, Organization)
        .join(Organization, Organization.id == OrganizationMember.organization_id)
        .where(
            OrganizationMember.user_id == user_id,
            OrganizationMember.organization_id == organization_id,
        )
    )
    row = result.first()
    return (row[0], row[1]) if row else None


async def require_membership(db: AsyncSession, user: User, organization_id: uuid.UUID) -> Organization:
    """
    Returns the organization if the user belongs to it, otherwise raises Forbidden.
    """
    membership = await get_membership(db, user.id, organization_id)
    if membership is None:
        raise Forbidden()
    return membership[1]


async def list_memberships(db: AsyncSession, user_id: uuid.UUID) -> List[Tuple[Organization, str]]:
    result = await db.execute(
        select(Organization, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user_id)
        .order_by(OrganizationMember.created_at)
    )
    return [(org, role) for org, role in result.all()]


async def get_primary_subscription_status(db: AsyncSession, user_id: uuid.UUID) -> CachedStatus:
    """
    The user's effective status across all their organizations.

    The first organization (by join order) with an active or trialing
    subscription wins, so a paying organization the user joined later is not
    shadowed by their personal workspace. Without one, the first membership's
    status applies; 'none' when the user belongs nowhere.
    """
    memberships = await list_memberships(db, user_id)
    if not memberships:
        return CachedStatus(organization_id=None, status=SubscriptionStatus.NONE.value)
    orgs = [org for org, _ in memberships]
    primary = next((org for org in orgs if has_active_subscription(org.subscription_status)), orgs[0])
    return CachedStatus(
        organization_id=primary.id,
        status=primary.subscription_status or SubscriptionStatus.NONE.value,
        organization_ids=frozenset(org.id for org in orgs),
    )


async def count_members(db: AsyncSession, organization_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(OrganizationMember)
        .where(OrganizationMember.organization_id == organization_id)
    )
    return result.scalar_one()


async def join_organization(db: AsyncSession, user: User, invite_code: str) -> Organization:
    """
    Admits the user into the organization owning the invite code.
    All preconditions are checked before the membership row is inserted.
    """
    result = await db.execute(select(Organization).where(Organization.invite_code == invite_code.strip()))
    org = result.scalars().first()
    if org is None:
        raise InvalidInviteCode()

    if not has_active_subscription(org.subscription_status):
        raise InactiveSubscription()

    max_seats = org.max_seats or settings.DEFAULT_MAX_SEATS
    member_count = await count_members(db, org.id)
    if member_count >= max_seats:
        raise SeatLimitReached(f"This organization has reached its seat limit of {max_seats} members")

    if await get_membership(db, user.id, org.id) is not None:
        raise AlreadyMember()

    db.add(OrganizationMember(organization_id=org.id, user_id=user.id, role=MemberRole.MEMBER.value))
    try:
        await db.commit()
    except IntegrityError as e:
        # A concurrent join for the same user won the unique constraint.
        await db.rollback()
        raise AlreadyMember() from e

    logger.info("User %s joined organization %s", user.id, org.id)
    return org


async def decrement_credits(db: AsyncSession, organization_id: uuid.UUID) -> int | None:
    """
    Takes one credit in a single conditional UPDATE.
    Returns the new balance, or None when the organization has no credit left.
    """
    result = await db.execute(
        update(Organization)
        .where(Organization.id == organization_id, Organization.credits > 0)
        .values(credits=Organization.credits - 1)
        .returning(Organization.credits)
    )
    new_balance = result.scalar_one_or_none()
    await db.commit()
    return new_balance


async def claim_stripe_customer(db: AsyncSession, organization_id: uuid.UUID, customer_id: str) -> str:
    """
    Stores the customer id unless another request already stored one.
    Returns whichever id the organization ends up with.
    """
    result = await db.execute(
        update(Organization)
        .where(Organization.id == organization_id, Organization.stripe_customer_id.is_(None))
        .values(stripe_customer_id=customer_id)
        .returning(Organization.stripe_customer_id)
    )
    stored = result.scalar_one_or_none()
    await db.commit()
    if stored is not None:
        return stored

    existing = await db.execute(select(Organization.stripe_customer_id).where(Organization.id == organization_id))
    winner = existing.scalar_one()
    logger.warning(
        "Organization %s already had Stripe customer %s; discarding %s",
        organization_id, winner, customer_id,
    )
    return winner
