import uuid
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from posted.services.subscription_gate import CachedStatus, SubscriptionStatusCache
from tests.fakes import sign_payload, stripe_event

TRIAL_END = 1767225600  # 2026-01-01T00:00:00Z
PERIOD_END = 1769904000


def utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


async def post_event(client: AsyncClient, payload: str, signature: str | None = "sign"):
    headers = {"content-type": "application/json"}
    if signature == "sign":
        headers["stripe-signature"] = sign_payload(payload)
    elif signature is not None:
        headers["stripe-signature"] = signature
    return await client.post("/api/v1/stripe/webhook", content=payload, headers=headers)


@pytest.mark.asyncio
async def test_webhook_rejects_missing_signature(test_client: AsyncClient, db_session: AsyncSession, org):
    payload = stripe_event("customer.subscription.deleted", {"id": "sub_1"})

    response = await post_event(test_client, payload, signature=None)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SIGNATURE"


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature_without_writing(
    test_client: AsyncClient, db_session: AsyncSession, make_org, user
):
    org = await make_org(members=(user,), stripe_subscription_id="sub_1", subscription_status="active")
    payload = stripe_event("customer.subscription.deleted", {"id": "sub_1"})

    response = await post_event(test_client, payload, signature=sign_payload(payload, secret="whsec_wrong"))

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature", "code": "INVALID_SIGNATURE"}
    await db_session.refresh(org)
    assert org.subscription_status == "active"


@pytest.mark.asyncio
async def test_webhook_rejects_stale_signature(test_client: AsyncClient, org):
    payload = stripe_event("customer.subscription.deleted", {"id": "sub_1"})
    stale = sign_payload(payload, timestamp=1_000_000_000)

    response = await post_event(test_client, payload, signature=stale)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_checkout_completed_links_trialing_subscription(
    test_client: AsyncClient, db_session: AsyncSession, org, stripe_gateway
):
    stripe_gateway.subscriptions["sub_42"] = {
        "id": "sub_42",
        "status": "trialing",
        "trial_end": TRIAL_END,
        "current_period_end": TRIAL_END,
        "metadata": {"organization_id": str(org.id)},
    }
    payload = stripe_event("checkout.session.completed", {
        "id": "cs_test_1",
        "object": "checkout.session",
        "subscription": "sub_42",
        "metadata": {"organization_id": str(org.id)},
    })

    response = await post_event(test_client, payload)

    assert response.status_code == 200
    assert response.json() == {"received": True, "event_type": "checkout.session.completed", "action": "updated"}
    await db_session.refresh(org)
    assert org.stripe_subscription_id == "sub_42"
    assert org.subscription_status == "trialing"
    assert utc(org.trial_ends_at) == datetime.fromtimestamp(TRIAL_END, tz=timezone.utc)
    assert stripe_gateway.called("retrieve_subscription") == [("retrieve_subscription", "sub_42")]


@pytest.mark.asyncio
async def test_subscription_updated_is_idempotent(test_client: AsyncClient, db_session: AsyncSession, make_org, user):
    org = await make_org(members=(user,), stripe_subscription_id="sub_7", subscription_status="trialing")
    payload = stripe_event("customer.subscription.updated", {
        "id": "sub_7",
        "status": "active",
        "trial_end": None,
        "items": {"data": [{"current_period_end": PERIOD_END}]},
        "metadata": {},
    })

    first = await post_event(test_client, payload)
    await db_session.refresh(org)
    after_first = (org.subscription_status, utc(org.subscription_current_period_end), org.trial_ends_at)

    second = await post_event(test_client, payload)
    await db_session.refresh(org)
    after_second = (org.subscription_status, utc(org.subscription_current_period_end), org.trial_ends_at)

    assert first.status_code == second.status_code == 200
    assert after_first == after_second
    assert after_first == ("active", datetime.fromtimestamp(PERIOD_END, tz=timezone.utc), None)


@pytest.mark.asyncio
async def test_subscription_updated_prefers_metadata_organization(
    test_client: AsyncClient, db_session: AsyncSession, org
):
    payload = stripe_event("customer.subscription.created", {
        "id": "sub_new",
        "status": "unpaid",
        "metadata": {"organization_id": str(org.id)},
    })

    response = await post_event(test_client, payload)

    assert response.status_code == 200
    await db_session.refresh(org)
    assert org.subscription_status == "past_due"


@pytest.mark.asyncio
async def test_subscription_deleted_cancels_and_clears_dates(
    test_client: AsyncClient, db_session: AsyncSession, make_org, user
):
    org = await make_org(
        members=(user,),
        stripe_subscription_id="sub_9",
        subscription_status="active",
        subscription_current_period_end=datetime(2026, 3, 1, tzinfo=timezone.utc),
        trial_ends_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
    )
    payload = stripe_event("customer.subscription.deleted", {"id": "sub_9", "status": "canceled"})

    response = await post_event(test_client, payload)

    assert response.status_code == 200
    await db_session.refresh(org)
    assert org.subscription_status == "canceled"
    assert org.subscription_current_period_end is None
    assert org.trial_ends_at is None


@pytest.mark.asyncio
async def test_payment_failed_marks_past_due(test_client: AsyncClient, db_session: AsyncSession, make_org, user):
    org = await make_org(members=(user,), stripe_subscription_id="sub_3", subscription_status="active")
    payload = stripe_event("invoice.payment_failed", {
        "id": "in_1",
        "parent": {"subscription_details": {"subscription": "sub_3"}},
    })

    response = await post_event(test_client, payload)

    assert response.status_code == 200
    await db_session.refresh(org)
    assert org.subscription_status == "past_due"


@pytest.mark.asyncio
async def test_unknown_event_is_acknowledged(test_client: AsyncClient, db_session: AsyncSession, org):
    payload = stripe_event("customer.created", {"id": "cus_1"})

    response = await post_event(test_client, payload)

    assert response.status_code == 200
    assert response.json()["action"] == "ignored"
    await db_session.refresh(org)
    assert org.subscription_status == "none"


@pytest.mark.asyncio
async def test_checkout_without_organization_is_skipped(test_client: AsyncClient, stripe_gateway):
    payload = stripe_event("checkout.session.completed", {"id": "cs_1", "subscription": "sub_1", "metadata": {}})

    response = await post_event(test_client, payload)

    assert response.status_code == 200
    assert response.json()["action"] == "skipped"
    assert stripe_gateway.called("retrieve_subscription") == []


@pytest.mark.asyncio
async def test_unknown_subscription_is_skipped(test_client: AsyncClient):
    payload = stripe_event("customer.subscription.deleted", {"id": "sub_unknown"})

    response = await post_event(test_client, payload)

    assert response.status_code == 200
    assert response.json()["action"] == "skipped"


@pytest.mark.asyncio
async def test_checkout_for_deleted_organization_is_skipped(test_client: AsyncClient, stripe_gateway):
    missing_org = uuid.uuid4()
    stripe_gateway.subscriptions["sub_5"] = {"id": "sub_5", "status": "trialing", "trial_end": TRIAL_END}
    payload = stripe_event("checkout.session.completed", {
        "id": "cs_1", "subscription": "sub_5", "metadata": {"organization_id": str(missing_org)},
    })

    response = await post_event(test_client, payload)

    assert response.status_code == 200
    assert response.json()["action"] == "skipped"


@pytest.mark.asyncio
async def test_write_failure_returns_500(test_client: AsyncClient, db_session: AsyncSession, make_org, user):
    await make_org(members=(user,), stripe_subscription_id="sub_8", subscription_status="active")
    payload = stripe_event("customer.subscription.deleted", {"id": "sub_8"})

    with patch.object(db_session, "commit", side_effect=OperationalError("UPDATE", {}, Exception("disk I/O error"))):
        response = await post_event(test_client, payload)

    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_WRITE_FAILURE"


@pytest.mark.asyncio
async def test_webhook_invalidates_cached_gate_status(
    test_client: AsyncClient, db_session: AsyncSession, make_org, user, status_cache: SubscriptionStatusCache
):
    org = await make_org(members=(user,), stripe_subscription_id="sub_4", subscription_status="active")
    status_cache.set(user.id, CachedStatus(organization_id=org.id, status="active"))
    payload = stripe_event("customer.subscription.deleted", {"id": "sub_4"})

    response = await post_event(test_client, payload)

    assert response.status_code == 200
    assert status_cache.get(user.id) is None
