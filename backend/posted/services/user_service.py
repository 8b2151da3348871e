import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from posted.schemas.user import UserCreate
from posted.schemas.organization import OrganizationCreate
from .organization_service import create_organization

from posted.models.user import User

async def get_user_by_supabase_id(db: AsyncSession, supabase_id: uuid.UUID) -> User | None:
    """
    Fetches a user from our database using their Supabase Auth ID.
    """
    result = await db.execute(select(User).filter(User.supabase_auth_id == supabase_id))
    return result.scalars().first()

async def create_user_with_organization(db: AsyncSession, user_in: UserCreate) -> User:
    """
    Creates a new user and their personal organization, with the user as owner.
    The organization starts without a subscription.
    """
    new_user = User(
        email=user_in.email,
        supabase_auth_id=user_in.supabase_auth_id,
        full_name=user_in.full_name,
    )
    db.add(new_user)
    await db.flush()

    org_name = f"{user_in.email.split('@')[0]}'s Workspace"
    await create_organization(db, OrganizationCreate(name=org_name), owner=new_user)

    await db.refresh(new_user)
    return new_user
