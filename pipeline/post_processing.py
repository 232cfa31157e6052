import io
import os

from PIL import Image, ImageOps, UnidentifiedImageError

from backend.app.errors import ValidationError
from .io_types import ImageInput


def normalize_image(image: ImageInput, max_side: int = 1024, quality: int = 90) -> ImageInput:
    """
    Re-encode an upload the way the vendor handles best.
    - Applies the EXIF orientation and drops alpha.
    - Downscales so the longest side is at most ``max_side``.
    - Saves as baseline JPEG.
    """
    try:
        im = Image.open(io.BytesIO(image.data))
        im = ImageOps.exif_transpose(im)
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError("Invalid image", info="Invalid image") from e
    im = im.convert("RGB")
    if max(im.size) > max_side:
        im.thumbnail((max_side, max_side), Image.LANCZOS)
    buf = io.BytesIO()
    im.save(buf, format="JPEG", quality=quality)
    stem = os.path.splitext(image.filename)[0] or "image"
    return ImageInput(data=buf.getvalue(), filename=f"{stem}.jpg", content_type="image/jpeg")
