import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from imagemax.core.database import get_db
from imagemax.core.security import get_current_user, verify_cron_secret
from imagemax.core.storage import ObjectStorage, get_storage
from imagemax.models.user import User
from imagemax.schemas.image import CleanupResponse, StorageUsageOut
from imagemax.services.cleanup import cleanup_old_files
from imagemax.services.quota import get_storage_usage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/storage/usage", response_model=StorageUsageOut)
async def storage_usage(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    usage = await get_storage_usage(db, user.id)
    return usage.dict()


@router.post("/storage/cleanup", response_model=CleanupResponse)
async def storage_cleanup(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    result = await cleanup_old_files(db, storage, user_id=user.id)
    return {
        "message": result.message,
        "deleted_count": result.deleted_count,
        "errors": result.errors or None,
    }


@router.get("/cron/cleanup", response_model=CleanupResponse, dependencies=[Depends(verify_cron_secret)])
async def cron_cleanup(db: AsyncSession = Depends(get_db), storage: ObjectStorage = Depends(get_storage)):
    result = await cleanup_old_files(db, storage)
    logger.info("Cron cleanup: %s", result.message)
    return {
        "message": result.message,
        "deleted_count": result.deleted_count,
        "errors": result.errors or None,
    }
