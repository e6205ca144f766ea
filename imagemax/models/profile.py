from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text

from imagemax.core.database import Base
from imagemax.core.utils import generate_uuid, utcnow

THEMES = ("light", "dark", "system")
SUBSCRIPTION_TIERS = ("free", "pro")


class UserProfile(Base):
    __tablename__ = "user_profiles"
    id = Column(String(128), primary_key=True, default=generate_uuid)
    user_id = Column(String(128), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    full_name = Column(String(128))
    avatar_url = Column(String(1024))
    location = Column(String(256), default="")
    bio = Column(Text, default="")
    email_notifications = Column(Boolean, default=True, nullable=False)
    theme = Column(String(16), default="system", nullable=False)
    subscription_tier = Column(String(16), default="free", nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
