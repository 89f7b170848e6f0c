"""Pillow-backed image engine: inspect metadata, resize and re-encode."""

from typing import Any, Dict, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .error_handling import with_error_handling
from .exceptions import IdentifyError, InvalidMetadata, ResizeError
from .models import ResizeRequest
from .quality import detect_jpeg_quality

LOSSLESS_FORMATS = ("PNG", "GIF")

# info keys Pillow may fall back to when encoding, per strippable profile
PROFILE_INFO_KEYS = {
    "icc": ("icc_profile",),
    "xmp": ("xmp", "XML:com.adobe.xmp"),
    "exif": ("exif",),
    "comment": ("comment",),
}


def fit_dimensions(
    size: Tuple[int, int], width: int, height: Optional[int] = None
) -> Tuple[int, int]:
    """
    Compute the output size for a resize.

    With a height the image is fitted inside ``width x height``; without one
    it is scaled to ``width`` and the height follows the aspect ratio. Both
    directions scale, matching ImageMagick's plain ``-resize``.
    """
    src_width, src_height = size
    if src_width <= 0 or src_height <= 0:
        raise ValueError(f"Invalid source dimensions {size}")

    if height is None:
        scale = width / src_width
    else:
        scale = min(width / src_width, height / src_height)

    return max(1, round(src_width * scale)), max(1, round(src_height * scale))


def _flatten_to_rgb(img: "Image.Image") -> "Image.Image":
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


class PillowImageEngine:
    """Resize capability backed by Pillow. Stateless and safe to share across threads."""

    @with_error_handling
    def identify(self, path: str) -> Dict[str, Any]:
        """
        Inspect an image file.

        Returns:
            Dictionary with "quality" (0..1), "width", "height", "format" and "mode"

        Raises:
            IdentifyError: If the file is not a readable image
            InvalidMetadata: If a JPEG carries no usable quantization table
        """
        try:
            with Image.open(path) as img:
                img.verify()
            with Image.open(path) as img:
                img.load()
                info: Dict[str, Any] = {
                    "width": img.width,
                    "height": img.height,
                    "format": img.format or "unknown",
                    "mode": img.mode,
                }
                if img.format == "JPEG":
                    info["quality"] = detect_jpeg_quality(img)
                elif img.format in LOSSLESS_FORMATS:
                    info["quality"] = 1.0
                else:
                    info["quality"] = None
        except (UnidentifiedImageError, InvalidMetadata):
            raise
        except (OSError, EOFError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
            raise IdentifyError(f"Cannot identify image {path}: {exc}") from exc
        return info

    def resize(self, request: ResizeRequest) -> str:
        """
        Resize ``request.src_path`` into ``request.dst_path``.

        The output is always a JPEG. ICC profiles and XMP packets are dropped,
        EXIF and comments are carried over.

        Raises:
            ResizeError: If decoding, resizing or encoding fails
        """
        try:
            with Image.open(request.src_path) as img:
                img.seek(0)
                img.load()
                exif = img.info.get("exif")
                comment = img.info.get("comment")
                icc_profile = img.info.get("icc_profile")

                target = fit_dimensions(img.size, request.width, request.height)
                resized = _flatten_to_rgb(img).resize(target, Image.Resampling.LANCZOS)
                for profile in request.strip_profiles:
                    for info_key in PROFILE_INFO_KEYS.get(profile, ()):
                        resized.info.pop(info_key, None)

                save_kwargs: Dict[str, Any] = {
                    "format": request.format,
                    "quality": max(1, min(100, round(request.quality * 100))),
                    "progressive": request.progressive,
                    "optimize": True,
                }
                if "icc" not in request.strip_profiles and icc_profile:
                    save_kwargs["icc_profile"] = icc_profile
                if "exif" not in request.strip_profiles and exif:
                    save_kwargs["exif"] = exif
                if "comment" not in request.strip_profiles and comment:
                    save_kwargs["comment"] = comment

                resized.save(request.dst_path, **save_kwargs)
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
            raise ResizeError(
                f"Resize of {request.src_path} to {request.width}x"
                f"{request.height or 'auto'} failed: {exc}"
            ) from exc
        return request.dst_path
