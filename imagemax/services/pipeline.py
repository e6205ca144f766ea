import asyncio
import base64
import logging
from typing import Callable, Optional

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from imagemax.core.config import settings
from imagemax.core.errors import ImageMaxError, ImageValidationError, ProcessingError
from imagemax.core.storage import ObjectStorage
from imagemax.core.utils import extension_for, now_ms
from imagemax.models.processed_image import ImageStatus, ProcessedImage, ToolType
from imagemax.models.user import User
from imagemax.processing.common import TransformResult
from imagemax.services.quota import check_storage_quota

logger = logging.getLogger(__name__)

Transform = Callable[[bytes], TransformResult]


async def run_blocking(func, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


async def read_upload(file: Optional[UploadFile]) -> bytes:
    if file is None or not file.filename:
        raise ImageValidationError("No file provided")
    if not (file.content_type or "").startswith("image/"):
        raise ImageValidationError("Invalid file type. Only images are allowed.")

    data = await file.read(settings.MAX_FILE_SIZE + 1)
    if len(data) > settings.MAX_FILE_SIZE:
        raise ImageValidationError("File size too large. Maximum size is 10MB.")
    if not data:
        raise ImageValidationError("No file provided")
    return data


def storage_key(user_id: str, tool: ToolType, timestamp: int, kind: str, ext: str) -> str:
    return f"{user_id}/{tool.value}/{timestamp}-{kind}.{ext}"


async def _mark_failed(db: AsyncSession, record: ProcessedImage, record_id: str, message: str, started: int):
    try:
        # only a failed flush/commit leaves the session needing a rollback
        if not db.is_active:
            await db.rollback()
        record.status = ImageStatus.FAILED.value
        record.error_message = message
        record.processing_duration = now_ms() - started
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Could not mark record %s as failed: %s", record_id, e)


async def run_pipeline(db: AsyncSession, storage: ObjectStorage, user: User, file: UploadFile,
                       tool: ToolType, tool_settings: dict, transform: Transform) -> dict:
    """Validate, check quota, transform, store both files and log the outcome.

    The record is written as processing before the transform starts so clients
    can poll it. An original already uploaded is left in place if a later step fails.
    """
    user_id = user.id
    data = await read_upload(file)

    quota = await check_storage_quota(db, user_id, len(data))
    if not quota.allowed:
        raise ImageValidationError(quota.message, details={"remaining": quota.remaining})

    record = ProcessedImage(
        user_id=user_id,
        tool_type=tool.value,
        settings=tool_settings,
        status=ImageStatus.PROCESSING.value,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    record_id = record.id

    started = now_ms()
    try:
        result = await run_blocking(transform, data)

        timestamp = now_ms()
        original_key = storage_key(user_id, tool, timestamp, "original", extension_for(file.content_type))
        processed_key = storage_key(user_id, tool, timestamp, "processed", result.extension)

        original_url = await run_blocking(storage.upload, original_key, data, file.content_type)
        processed_url = await run_blocking(storage.upload, processed_key, result.data, result.content_type)

        metadata = {**result.metadata, "originalSize": len(data), "processedSize": len(result.data)}

        record.original_url = original_url
        record.processed_url = processed_url
        record.file_size = len(result.data)
        record.image_metadata = metadata
        record.status = ImageStatus.COMPLETED.value
        record.processing_duration = now_ms() - started
        await db.commit()

    except ImageMaxError as e:
        await _mark_failed(db, record, record_id, e.message, started)
        raise
    except Exception as e:
        logger.exception("%s failed for record %s", tool.value, record_id)
        await _mark_failed(db, record, record_id, str(e), started)
        raise ProcessingError(details=str(e))

    logger.info("%s completed for user %s in %d ms", tool.value, user_id, record.processing_duration)

    return {
        "success": True,
        "id": record.id,
        "status": record.status,
        "original_url": original_url,
        "processed_url": processed_url,
        "data": base64.b64encode(result.data).decode("utf-8"),
        "metadata": metadata,
    }
