import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Optional

import requests
from PIL import Image
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from imagemax.core.config import settings
from imagemax.core.errors import RemoveBgError
from imagemax.core.utils import now_ms
from imagemax.models.processed_image import ToolType, ToolUsage

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "outputFormat": "png",
    "size": "auto",
    "type": "auto",
    "channels": "rgba",
}


@dataclass
class RemoveBgResult:
    data: bytes
    metadata: dict = field(default_factory=dict)
    processing_time: int = 0


class RemoveBgClient:
    def __init__(self, api_key: str, url: str = settings.REMOVE_BG_URL, timeout: int = settings.REMOVE_BG_TIMEOUT):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout

    def remove_background(self, image: bytes, filename: str = "image", content_type: str = "image/png",
                          config: Optional[dict] = None) -> RemoveBgResult:
        """POST the image to remove.bg and return the cut-out.

        Raises RemoveBgError carrying the API's first error title, code and HTTP status.
        """
        options = {**DEFAULT_SETTINGS, **(config or {})}
        started = now_ms()

        try:
            response = requests.post(
                self.url,
                headers={"X-Api-Key": self.api_key},
                files={"image_file": (filename, image, content_type)},
                data={
                    "size": options["size"],
                    "type": options["type"],
                    "format": options["outputFormat"],
                    "channels": options["channels"],
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoveBgError(f"Failed to reach remove.bg: {e}", code="NETWORK_ERROR", status=502)

        if not response.ok:
            title, code = None, "UNKNOWN_ERROR"
            try:
                errors = response.json().get("errors") or []
                if errors:
                    title = errors[0].get("title")
                    code = errors[0].get("code") or code
            except ValueError:
                logger.warning("remove.bg returned a non-JSON error body (status %s)", response.status_code)
            logger.error("Remove.bg API error: %s %s", response.status_code, title)
            raise RemoveBgError(title, code=code, status=response.status_code)

        result = response.content
        width, height = 0, 0
        try:
            with Image.open(BytesIO(result)) as out:
                width, height = out.size
        except OSError:
            logger.warning("Could not read dimensions of remove.bg result")

        return RemoveBgResult(
            data=result,
            processing_time=now_ms() - started,
            metadata={
                "originalSize": len(image),
                "processedSize": len(result),
                "format": options["outputFormat"],
                "width": width,
                "height": height,
                "settings": options,
            },
        )


def get_removebg_client() -> RemoveBgClient:
    return RemoveBgClient(settings.REMOVE_BG_API_KEY)


async def record_tool_usage(db: AsyncSession, user_id: Optional[str], success: bool, processing_time: int,
                            metadata: dict, error: Optional[str] = None):
    db.add(ToolUsage(
        user_id=user_id,
        tool_type=ToolType.BACKGROUND_REMOVAL.value,
        success=success,
        error_message=error,
        processing_time=processing_time,
        request_metadata=metadata,
    ))
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to log tool usage: %s", e)
