import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from imagemax.core.config import settings
from imagemax.core.database import init_models
from imagemax.core.errors import register_error_handlers
from imagemax.core.ratelimit import upload_guard_middleware
from imagemax.core.storage import storage
from imagemax.routers import auth, images, profile, root, tools
from imagemax.routers import storage as storage_routes

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    storage.ensure_bucket()
    await init_models()
    logger.info("ImageMax backend ready")
    yield


app = FastAPI(title="ImageMax Backend", lifespan=lifespan)

app.middleware("http")(upload_guard_middleware)
register_error_handlers(app)

app.include_router(root.router, tags=["health-check"])
app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(tools.router, prefix="/api", tags=["tools"])
app.include_router(images.router, prefix="/api/images", tags=["images"])
app.include_router(storage_routes.router, prefix="/api", tags=["storage"])
app.include_router(profile.router, prefix="/api/profile", tags=["profile"])


def main():
    uvicorn.run("imagemax.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    uvicorn.run("imagemax.main:app", host="0.0.0.0", port=8000, reload=True)
