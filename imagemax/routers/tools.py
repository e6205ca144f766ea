from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from imagemax.core.database import get_db
from imagemax.core.errors import RemoveBgError
from imagemax.core.security import get_current_user
from imagemax.core.storage import ObjectStorage, get_storage
from imagemax.core.utils import now_ms
from imagemax.models.processed_image import ToolType
from imagemax.models.user import User
from imagemax.processing.common import CONTENT_TYPES, TransformResult
from imagemax.processing.convert import convert_image
from imagemax.processing.enhance import enhance_image
from imagemax.processing.upscale import upscale_image
from imagemax.schemas.image import ProcessResponse
from imagemax.services.pipeline import run_pipeline
from imagemax.services.removebg import (
    DEFAULT_SETTINGS,
    RemoveBgClient,
    get_removebg_client,
    record_tool_usage,
)

router = APIRouter()


@router.post("/convert", response_model=ProcessResponse)
async def convert(
    file: Optional[UploadFile] = File(None),
    format: str = Form("webp"),
    quality: int = Form(80),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    output_format = format.lower()
    return await run_pipeline(
        db, storage, user, file,
        ToolType.FORMAT_CONVERSION,
        {"format": output_format, "quality": quality},
        lambda data: convert_image(data, output_format, quality),
    )


@router.post("/enhance", response_model=ProcessResponse)
async def enhance(
    file: Optional[UploadFile] = File(None),
    type: str = Form("auto"),
    intensity: int = Form(50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    return await run_pipeline(
        db, storage, user, file,
        ToolType.ENHANCEMENT,
        {"type": type, "intensity": intensity},
        lambda data: enhance_image(data, type, intensity),
    )


@router.post("/upscale", response_model=ProcessResponse)
async def upscale(
    file: Optional[UploadFile] = File(None),
    scale: int = Form(2),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    return await run_pipeline(
        db, storage, user, file,
        ToolType.UPSCALER,
        {"scale": scale},
        lambda data: upscale_image(data, scale),
    )


@router.post("/remove-background", response_model=ProcessResponse)
async def remove_background(
    file: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    client: RemoveBgClient = Depends(get_removebg_client),
):
    user_id = user.id
    usage = {}

    def transform(data: bytes) -> TransformResult:
        started = now_ms()
        try:
            result = client.remove_background(
                data,
                filename=file.filename,
                content_type=file.content_type,
                config=DEFAULT_SETTINGS,
            )
        except RemoveBgError as e:
            usage.update(success=False, error=e.message, processing_time=now_ms() - started,
                         metadata={"originalSize": len(data), "settings": DEFAULT_SETTINGS})
            raise
        usage.update(success=True, error=None, processing_time=result.processing_time,
                     metadata=result.metadata)
        return TransformResult(
            data=result.data,
            extension="png",
            content_type=CONTENT_TYPES["png"],
            metadata=result.metadata,
        )

    try:
        return await run_pipeline(
            db, storage, user, file,
            ToolType.BACKGROUND_REMOVAL,
            dict(DEFAULT_SETTINGS),
            transform,
        )
    finally:
        if usage:
            await record_tool_usage(db, user_id, usage["success"], usage["processing_time"],
                                    usage["metadata"], usage["error"])
