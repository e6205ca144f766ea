from dataclasses import dataclass

from imagemax.core.errors import ImageValidationError
from imagemax.processing.common import (
    CONTENT_TYPES,
    ModulateParams,
    SharpenParams,
    TransformResult,
    encode_preserved,
    gamma,
    load_image,
    modulate,
    preserve_format,
    sharpen,
    working_copy,
)


@dataclass(frozen=True)
class EnhancementPreset:
    brightness: float
    saturation: float
    sharpen: SharpenParams
    gamma: float


PRESETS = {
    # soft skin, balanced lighting
    "portrait": EnhancementPreset(1.05, 1.10, SharpenParams(1.2, 1.5, 0.7), 1.05),
    # richer colour and clarity
    "landscape": EnhancementPreset(1.02, 1.15, SharpenParams(1.5, 1.5, 0.7), 1.10),
    # lift exposure, keep detail
    "low-light": EnhancementPreset(1.20, 1.05, SharpenParams(1.0, 1.2, 0.5), 1.15),
    "auto": EnhancementPreset(1.05, 1.10, SharpenParams(1.3, 1.4, 0.6), 1.08),
}


def intensity_factor(intensity: int) -> float:
    return 0.5 + intensity / 100


def enhance_image(data: bytes, enhancement_type: str = "auto", intensity: int = 50) -> TransformResult:
    if not 0 <= intensity <= 100:
        raise ImageValidationError("Intensity must be between 0 and 100", details=str(intensity))

    enhancement_type = enhancement_type or "auto"
    preset = PRESETS.get(enhancement_type, PRESETS["auto"])
    factor = intensity_factor(intensity)

    img, source_format = load_image(data)
    width, height = img.size

    out = working_copy(img)
    out = modulate(out, ModulateParams(preset.brightness * factor, preset.saturation * factor))
    out = sharpen(out, preset.sharpen)
    out = gamma(out, preset.gamma)

    fmt = preserve_format(source_format)
    return TransformResult(
        data=encode_preserved(out, fmt),
        extension=fmt,
        content_type=CONTENT_TYPES[fmt],
        metadata={
            "width": width,
            "height": height,
            "format": source_format or "png",
            "enhancementType": enhancement_type,
            "intensity": intensity,
        },
    )
