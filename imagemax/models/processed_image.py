import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from imagemax.core.database import Base
from imagemax.core.utils import generate_uuid, utcnow


class ToolType(str, enum.Enum):
    FORMAT_CONVERSION = "format-conversion"
    ENHANCEMENT = "enhancement"
    BACKGROUND_REMOVAL = "background-removal"
    UPSCALER = "upscaler"


class ImageStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessedImage(Base):
    __tablename__ = "processed_images"
    id = Column(String(128), primary_key=True, default=generate_uuid)
    user_id = Column(String(128), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    original_url = Column(String(1024))
    processed_url = Column(String(1024))
    tool_type = Column(String(32), nullable=False)
    settings = Column(JSON, default=dict)
    image_metadata = Column(JSON, default=dict)
    file_size = Column(Integer)
    status = Column(String(32), default=ImageStatus.PENDING.value, nullable=False)  # pending | processing | completed | failed
    processing_duration = Column(Integer)  # ms
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)


class ToolUsage(Base):
    __tablename__ = "tool_usage"
    id = Column(String(128), primary_key=True, default=generate_uuid)
    user_id = Column(String(128), ForeignKey("users.id", ondelete="SET NULL"))
    tool_type = Column(String(32), nullable=False)
    success = Column(Boolean, nullable=False)
    error_message = Column(Text)
    processing_time = Column(Integer)
    request_metadata = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)
