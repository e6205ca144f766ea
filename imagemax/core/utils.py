import time
import uuid
from datetime import datetime, timezone


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def extension_for(content_type: str, default: str = "png") -> str:
    """image/jpeg -> jpeg, image/svg+xml -> svg"""
    if not content_type or "/" not in content_type:
        return default
    subtype = content_type.split("/", 1)[1].split(";", 1)[0].strip().lower()
    return subtype.split("+", 1)[0] or default
