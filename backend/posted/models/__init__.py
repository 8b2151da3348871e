# This file serves as the central point for all our models.
# By importing them here, we ensure that SQLAlchemy's metadata
# is aware of all tables when the application starts.

from .base import Base
from .organization import Organization, SubscriptionStatus
from .user import User
from .organization_member import OrganizationMember, MemberRole
from .image import Image, ImageSource
