"""Pillow building blocks shared by the conversion, enhancement and upscaling tools."""

from dataclasses import dataclass, field
from io import BytesIO
from typing import Tuple

from PIL import Image, ImageEnhance, ImageFilter, UnidentifiedImageError

from imagemax.core.errors import ImageValidationError


CONTENT_TYPES = {
    "webp": "image/webp",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "avif": "image/avif",
    "gif": "image/gif",
}


@dataclass
class TransformResult:
    data: bytes
    extension: str
    content_type: str
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SharpenParams:
    sigma: float
    flat: float
    jagged: float


@dataclass(frozen=True)
class ModulateParams:
    brightness: float = 1.0
    saturation: float = 1.0


def load_image(data: bytes) -> Tuple[Image.Image, str]:
    """Decode bytes and return the image with its lower-case source format."""
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageValidationError("Invalid image dimensions", details=str(e))

    width, height = img.size
    if width == 0 or height == 0:
        raise ImageValidationError("Invalid image dimensions")

    source_format = (img.format or "png").lower()
    return img, source_format


def working_copy(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    if img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")
    return img.convert("RGB")


def _split_alpha(img: Image.Image):
    if img.mode == "RGBA":
        return img.convert("RGB"), img.getchannel("A")
    return img, None


def _merge_alpha(rgb: Image.Image, alpha):
    if alpha is None:
        return rgb
    rgb.putalpha(alpha)
    return rgb


def sharpen(img: Image.Image, params: SharpenParams) -> Image.Image:
    # flat drives the unsharp strength, jagged raises the edge threshold
    unsharp = ImageFilter.UnsharpMask(
        radius=params.sigma,
        percent=int(round(params.flat * 100)),
        threshold=int(round(params.jagged * 2)),
    )
    rgb, alpha = _split_alpha(img)
    return _merge_alpha(rgb.filter(unsharp), alpha)


def modulate(img: Image.Image, params: ModulateParams) -> Image.Image:
    rgb, alpha = _split_alpha(img)
    if params.brightness != 1.0:
        rgb = ImageEnhance.Brightness(rgb).enhance(params.brightness)
    if params.saturation != 1.0:
        rgb = ImageEnhance.Color(rgb).enhance(params.saturation)
    return _merge_alpha(rgb, alpha)


def gamma(img: Image.Image, value: float) -> Image.Image:
    if value == 1.0:
        return img
    # sharp darkens by gamma before a resize and brightens by 1/gamma after it;
    # with no resize that pair is close to a no-op, so only the 1/gamma lift is applied
    inverse = 1.0 / value
    lut = [int(round(255 * ((i / 255.0) ** inverse))) for i in range(256)]
    rgb, alpha = _split_alpha(img)
    return _merge_alpha(rgb.point(lut * 3), alpha)


def resize(img: Image.Image, width: int, height: int) -> Image.Image:
    return img.resize((width, height), Image.Resampling.LANCZOS)


def flatten(img: Image.Image, background=(255, 255, 255)) -> Image.Image:
    """Drop alpha onto a solid background for formats without transparency."""
    if img.mode == "RGBA":
        base = Image.new("RGB", img.size, background)
        base.paste(img, mask=img.getchannel("A"))
        return base
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def encode(img: Image.Image, fmt: str, **params) -> bytes:
    fmt = fmt.upper()
    if fmt == "JPEG":
        img = flatten(img)
    output = BytesIO()
    img.save(output, format=fmt, **params)
    return output.getvalue()


def preserve_format(source_format: str) -> str:
    """Tools that keep JPEG as JPEG and write everything else as PNG."""
    return "jpeg" if source_format in ("jpeg", "jpg") else "png"


def encode_preserved(img: Image.Image, fmt: str) -> bytes:
    if fmt == "jpeg":
        return encode(img, "JPEG", quality=100, subsampling=0)
    return encode(img, "PNG", optimize=True, compress_level=9)
