import enum
import secrets
import uuid
from sqlalchemy import Column, String, Integer, DateTime, CheckConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from posted.models.base import Base


class SubscriptionStatus(str, enum.Enum):
    NONE = "none"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


# Only these statuses unlock the product.
ACCESS_GRANTING_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value})


def has_active_subscription(status: str | None) -> bool:
    if not status:
        return False
    return status in ACCESS_GRANTING_STATUSES


def generate_invite_code() -> str:
    return secrets.token_hex(4).upper()


class Organization(Base):
    __tablename__ = 'organizations'
    __table_args__ = (
        CheckConstraint('credits >= 0', name='ck_organizations_credits_non_negative'),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=True)

    max_seats = Column(Integer, nullable=False, default=2)
    credits = Column(Integer, nullable=False, default=0)
    invite_code = Column(String, unique=True, index=True, nullable=False, default=generate_invite_code)

    stripe_customer_id = Column(String, unique=True, index=True, nullable=True)
    stripe_subscription_id = Column(String, unique=True, index=True, nullable=True)
    subscription_status = Column(String, nullable=False, default=SubscriptionStatus.NONE.value)
    subscription_current_period_end = Column(DateTime(timezone=True), nullable=True)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    members = relationship("OrganizationMember", back_populates="organization", cascade="all, delete-orphan")
    images = relationship("Image", back_populates="organization")
