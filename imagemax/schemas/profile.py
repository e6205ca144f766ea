from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from imagemax.schemas.base import CamelModel


class ProfileOut(CamelModel):
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    email_notifications: bool
    theme: str
    subscription_tier: str
    updated_at: Optional[datetime] = None


class ProfileUpdate(CamelModel):
    full_name: Optional[str] = Field(None, max_length=128)
    avatar_url: Optional[str] = Field(None, max_length=1024)
    location: Optional[str] = Field(None, max_length=256)
    bio: Optional[str] = None
    email_notifications: Optional[bool] = None
    theme: Optional[Literal["light", "dark", "system"]] = None
