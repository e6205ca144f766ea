from imagemax.models.user import User
from imagemax.models.profile import UserProfile
from imagemax.models.processed_image import ImageStatus, ProcessedImage, ToolType, ToolUsage

__all__ = ["User", "UserProfile", "ImageStatus", "ProcessedImage", "ToolType", "ToolUsage"]
