import math
from typing import List, Tuple

from PIL import Image

from imagemax.core.errors import ImageValidationError
from imagemax.processing.common import (
    CONTENT_TYPES,
    ModulateParams,
    SharpenParams,
    TransformResult,
    encode_preserved,
    load_image,
    modulate,
    preserve_format,
    resize,
    sharpen,
    working_copy,
)

MIN_SCALE = 2
MAX_SCALE = 8

STEP_SHARPEN = SharpenParams(1.2, 1.5, 0.7)
FINAL_SHARPEN = SharpenParams(1.5, 1.5, 0.7)
STEP_MODULATE = ModulateParams(brightness=1.02, saturation=1.05)


def step_factors(scale: int) -> List[float]:
    """Doubling plan: x2 per step, the last step covering what is left."""
    steps = math.ceil(math.log2(scale)) if scale > 2 else 1
    return [2.0 if i < steps - 1 else scale / 2 ** (steps - 1) for i in range(steps)]


def progressive_upscale(img: Image.Image, scale: int) -> Image.Image:
    target: Tuple[int, int] = (img.width * scale, img.height * scale)

    current = working_copy(img)
    for factor in step_factors(scale):
        current = resize(current, round(current.width * factor), round(current.height * factor))
        current = sharpen(current, STEP_SHARPEN)
        current = modulate(current, STEP_MODULATE)

    current = resize(current, *target)
    current = sharpen(current, FINAL_SHARPEN)
    return modulate(current, STEP_MODULATE)


def upscale_image(data: bytes, scale: int = 2) -> TransformResult:
    if not MIN_SCALE <= scale <= MAX_SCALE:
        raise ImageValidationError(f"Scale must be between {MIN_SCALE} and {MAX_SCALE}", details=str(scale))

    img, source_format = load_image(data)
    width, height = img.size

    out = progressive_upscale(img, scale)

    fmt = preserve_format(source_format)
    return TransformResult(
        data=encode_preserved(out, fmt),
        extension=fmt,
        content_type=CONTENT_TYPES[fmt],
        metadata={
            "originalWidth": width,
            "originalHeight": height,
            "newWidth": width * scale,
            "newHeight": height * scale,
            "scale": scale,
            "format": source_format or "png",
        },
    )
