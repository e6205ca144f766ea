from PIL import Image

from imagemax.core.errors import ImageValidationError
from imagemax.processing.common import CONTENT_TYPES, TransformResult, encode, load_image, working_copy

OUTPUT_FORMATS = ("webp", "png", "jpg", "jpeg", "avif", "gif")


def _encode_for(img: Image.Image, output_format: str, quality: int) -> bytes:
    if output_format == "webp":
        return encode(img, "WEBP", quality=quality, method=6, lossless=False)
    if output_format == "png":
        return encode(img, "PNG", optimize=True, compress_level=9)
    if output_format in ("jpg", "jpeg"):
        return encode(img, "JPEG", quality=quality, subsampling=0, optimize=True)
    if output_format == "avif":
        return encode(img, "AVIF", quality=quality, speed=4)
    # gif
    return encode(img.convert("RGBA").quantize(colors=256), "GIF", optimize=True)


def convert_image(data: bytes, output_format: str = "webp", quality: int = 80) -> TransformResult:
    output_format = (output_format or "webp").lower()
    if output_format not in OUTPUT_FORMATS:
        raise ImageValidationError("Unsupported output format", details=output_format)
    if not 1 <= quality <= 100:
        raise ImageValidationError("Quality must be between 1 and 100", details=str(quality))

    img, input_format = load_image(data)
    width, height = img.size

    processed = _encode_for(working_copy(img), output_format, quality)

    return TransformResult(
        data=processed,
        extension=output_format,
        content_type=CONTENT_TYPES[output_format],
        metadata={
            "width": width,
            "height": height,
            "inputFormat": input_format or "unknown",
            "outputFormat": output_format,
            "quality": quality,
        },
    )
