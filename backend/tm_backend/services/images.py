"""Avatar rendering with Pillow: 256x256 cover crop, re-encoded as WebP."""
import io

from PIL import Image, ImageOps, UnidentifiedImageError

from tm_backend.services.storage.base import InvalidImageError

AVATAR_SIZE = (256, 256)
AVATAR_FORMAT = "WEBP"
AVATAR_EXTENSION = "webp"
AVATAR_CONTENT_TYPE = "image/webp"


def render_avatar(data: bytes) -> bytes:
    """Return WebP bytes of data cropped to fill AVATAR_SIZE. Raise InvalidImageError if undecodable."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA" if img.mode in ("LA", "PA", "P") else "RGB")
            fitted = ImageOps.fit(img, AVATAR_SIZE, method=Image.Resampling.LANCZOS)
            out = io.BytesIO()
            fitted.save(out, format=AVATAR_FORMAT, quality=85)
            return out.getvalue()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise InvalidImageError("Avatar is not a decodable image") from e
