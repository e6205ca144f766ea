from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from imagemax.core.database import get_db
from imagemax.core.security import get_current_user
from imagemax.models.profile import UserProfile
from imagemax.models.user import User
from imagemax.schemas.profile import ProfileOut, ProfileUpdate

router = APIRouter()


async def get_or_create_profile(db: AsyncSession, user: User) -> UserProfile:
    result = await db.execute(select(UserProfile).where(UserProfile.user_id == user.id))
    profile = result.scalars().first()
    if profile is None:
        profile = UserProfile(user_id=user.id, full_name=user.full_name)
        db.add(profile)
        await db.commit()
        await db.refresh(profile)
    return profile


@router.get("", response_model=ProfileOut)
async def read_profile(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await get_or_create_profile(db, user)


@router.put("", response_model=ProfileOut)
async def update_profile(
    changes: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await get_or_create_profile(db, user)
    for field, value in changes.model_dump(exclude_unset=True).items():
        if value is None and field in ("email_notifications", "theme"):
            continue
        setattr(profile, field, value)
    await db.commit()
    await db.refresh(profile)
    return profile
