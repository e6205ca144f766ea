import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from imagemax.core.config import settings
from imagemax.core.storage import ObjectStorage
from imagemax.core.utils import utcnow
from imagemax.models.processed_image import ProcessedImage

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    deleted_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.deleted_count:
            return "No files to clean up"
        return f"Cleaned up {self.deleted_count} files"


async def cleanup_old_files(db: AsyncSession, storage: ObjectStorage,
                            max_age_days: int = settings.MAX_FILE_AGE_DAYS,
                            user_id: Optional[str] = None) -> CleanupResult:
    """Remove records older than max_age_days and their stored objects.

    Storage failures are collected and reported; the rows are deleted regardless.
    """
    cutoff = utcnow() - timedelta(days=max_age_days)

    query = select(ProcessedImage.id, ProcessedImage.original_url, ProcessedImage.processed_url) \
        .where(ProcessedImage.created_at < cutoff)
    if user_id is not None:
        query = query.where(ProcessedImage.user_id == user_id)
    old_files = (await db.execute(query)).all()

    if not old_files:
        return CleanupResult()

    result = CleanupResult(deleted_count=len(old_files))
    for _, original_url, processed_url in old_files:
        keys = [k for k in (storage.key_from_url(original_url), storage.key_from_url(processed_url)) if k]
        result.errors.extend(storage.remove(keys))

    await db.execute(
        delete(ProcessedImage)
        .where(ProcessedImage.id.in_([row.id for row in old_files]))
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info("Cleanup removed %d records (user=%s, storage errors=%d)",
                result.deleted_count, user_id or "*", len(result.errors))
    return result
