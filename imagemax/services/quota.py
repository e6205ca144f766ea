from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from imagemax.models.processed_image import ProcessedImage
from imagemax.models.profile import UserProfile

STORAGE_QUOTA_LIMITS = {
    "free": 100 * 1024 * 1024,
    "pro": 1024 * 1024 * 1024,
}

# percent of the quota after which the dashboard warns
STORAGE_WARNING_THRESHOLD = 80

QUOTA_EXCEEDED_MESSAGE = "Storage quota exceeded. Please upgrade your plan or delete some files."


@dataclass
class StorageUsage:
    total: int
    used: int
    remaining: int
    percentage: float
    warning: bool

    def dict(self):
        return asdict(self)


@dataclass
class QuotaCheck:
    allowed: bool
    remaining: int
    message: Optional[str] = None


def quota_for_tier(tier: Optional[str]) -> int:
    return STORAGE_QUOTA_LIMITS["pro"] if tier == "pro" else STORAGE_QUOTA_LIMITS["free"]


def record_size(file_size: Optional[int], metadata: Optional[dict]) -> int:
    if file_size:
        return file_size
    if metadata:
        return (metadata.get("originalSize") or 0) + (metadata.get("processedSize") or 0)
    return 0


async def get_storage_usage(db: AsyncSession, user_id: str) -> StorageUsage:
    tier = await db.scalar(select(UserProfile.subscription_tier).where(UserProfile.user_id == user_id))
    limit = quota_for_tier(tier)

    rows = await db.execute(
        select(ProcessedImage.file_size, ProcessedImage.image_metadata)
        .where(ProcessedImage.user_id == user_id)
    )
    used = sum(record_size(size, metadata) for size, metadata in rows.all())

    percentage = used / limit * 100
    return StorageUsage(
        total=limit,
        used=used,
        remaining=max(0, limit - used),
        percentage=percentage,
        warning=percentage >= STORAGE_WARNING_THRESHOLD,
    )


async def check_storage_quota(db: AsyncSession, user_id: str, file_size: int) -> QuotaCheck:
    usage = await get_storage_usage(db, user_id)
    if usage.remaining < file_size:
        return QuotaCheck(allowed=False, remaining=usage.remaining, message=QUOTA_EXCEEDED_MESSAGE)
    return QuotaCheck(allowed=True, remaining=usage.remaining)
