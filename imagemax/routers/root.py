from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    return {"service": "imagemax-backend", "status": "ok"}
