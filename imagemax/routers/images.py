from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from imagemax.core.database import get_db
from imagemax.core.security import get_current_user
from imagemax.models.processed_image import ProcessedImage, ToolType
from imagemax.models.user import User
from imagemax.schemas.image import ProcessedImageOut

router = APIRouter()


@router.get("", response_model=List[ProcessedImageOut])
async def get_history(
    tool: Optional[ToolType] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    query = select(ProcessedImage).where(ProcessedImage.user_id == user.id)
    if tool is not None:
        query = query.where(ProcessedImage.tool_type == tool.value)
    query = query.order_by(ProcessedImage.created_at.desc()).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{image_id}", response_model=ProcessedImageOut)
async def get_image(image_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    record = await db.get(ProcessedImage, image_id)
    if not record:
        raise HTTPException(404, "Not found")
    if record.user_id != user.id:
        raise HTTPException(403, "Forbidden")
    return record
