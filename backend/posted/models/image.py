import enum
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, func, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from posted.models.base import Base


class ImageSource(str, enum.Enum):
    AI_GENERATED = "ai_generated"
    UPLOAD = "upload"
    COLLECTION = "collection"


class Image(Base):
    __tablename__ = 'images'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Nullable: generations without an organization are kept as public assets.
    organization_id = Column(UUID(as_uuid=True), ForeignKey('organizations.id', ondelete='SET NULL'), nullable=True, index=True)

    url = Column(Text, nullable=False)
    source = Column(String, nullable=False, default=ImageSource.UPLOAD.value)
    prompt = Column(Text, nullable=True)
    storage_path = Column(String, nullable=False)
    # "metadata" is reserved on declarative classes, so the attribute is renamed.
    image_metadata = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    organization = relationship("Organization", back_populates="images")
