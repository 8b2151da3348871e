from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from posted.core.dependencies import get_optional_user, get_status_cache
from posted.core.exceptions import AuthenticationRequired
from posted.database import get_db
from posted.models.user import User
from posted.schemas.misc import GateResponse
from posted.services import organization_service
from posted.services.subscription_gate import SubscriptionGate, SubscriptionStatusCache

router = APIRouter()


@router.get("/gate", response_model=GateResponse)
async def check_gate(
    path: str = Query(..., description="The dashboard route about to render"),
    db: AsyncSession = Depends(get_db),
    status_cache: SubscriptionStatusCache = Depends(get_status_cache),
    current_user: User | None = Depends(get_optional_user),
):
    """
    Tell the dashboard shell whether `path` may render.
    Anonymous callers always get `loading`.
    """
    redirects: list[str] = []

    async def load_status():
        if current_user is None:
            raise AuthenticationRequired()
        return await organization_service.get_primary_subscription_status(db, current_user.id)

    gate = SubscriptionGate(
        load_status=load_status,
        navigate=redirects.append,
        cache=status_cache,
        session_key=current_user.id if current_user else None,
    )
    state = await gate.mount(path)
    return GateResponse(
        state=state.value,
        status=gate.status,
        redirect_to=redirects[0] if redirects else None,
    )
