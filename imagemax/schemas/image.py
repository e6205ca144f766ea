from datetime import datetime
from typing import Any, Dict, List, Optional

from imagemax.schemas.base import CamelModel


class ProcessedImageOut(CamelModel):
    id: str
    tool_type: str
    status: str
    original_url: Optional[str] = None
    processed_url: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None
    image_metadata: Optional[Dict[str, Any]] = None
    file_size: Optional[int] = None
    processing_duration: Optional[int] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


class ProcessResponse(CamelModel):
    success: bool = True
    id: str
    status: str
    original_url: Optional[str] = None
    processed_url: Optional[str] = None
    data: str
    metadata: Dict[str, Any]


class StorageUsageOut(CamelModel):
    total: int
    used: int
    remaining: int
    percentage: float
    warning: bool


class CleanupResponse(CamelModel):
    success: bool = True
    message: str
    deleted_count: int
    errors: Optional[List[str]] = None
