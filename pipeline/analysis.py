from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from google import genai
from google.genai import types

from backend.app.config import TryOnConfig
from backend.app.errors import ValidationError, VendorError

logger = logging.getLogger(__name__)

MATCHING_RUBRIC = """You are a fashion stylist reviewing a virtual try-on result.
Look at the person wearing the garment in this image and judge how well the
garment matches the person: colour harmony with skin tone and hair, fit and
proportions for the body shape, and overall style coherence.

Reply in exactly this format:
Match: <integer 0-100>%
Description: <two or three sentences explaining the score and one suggestion>
"""


def fetch_image(image_url: str, session: Any = None, timeout: float = 30.0) -> tuple[bytes, str]:
    """Download an image; the MIME type comes from the response Content-Type."""
    session = session or requests.Session()
    try:
        r = session.get(image_url, timeout=timeout)
    except requests.RequestException as e:
        raise VendorError(f"Failed to fetch image: {e}", info="Fetch error") from e
    if not (200 <= r.status_code < 300):
        raise VendorError(f"Failed to fetch image: HTTP {r.status_code}", info="Fetch error")
    ctype = (r.headers.get("content-type") or "image/jpeg").split(";")[0].strip().lower()
    if not ctype.startswith("image/"):
        raise VendorError(f"URL does not point to an image (content-type: {ctype})", info="Fetch error")
    return r.content, ctype


def analyze_match(
    image_url: Optional[str],
    config: TryOnConfig,
    session: Any = None,
    client: Any = None,
) -> str:
    if not image_url:
        raise ValidationError("image_url is required", info="Missing image URL")
    api_key = config.require_gemini()
    data, mime_type = fetch_image(image_url, session=session, timeout=config.http_timeout_s)

    client = client or genai.Client(api_key=api_key)
    image_part = types.Part.from_bytes(data=data, mime_type=mime_type)
    logger.info("Requesting matching analysis (%s, %d bytes)", mime_type, len(data))
    resp = client.models.generate_content(model=config.gemini_model, contents=[image_part, MATCHING_RUBRIC])
    text = (resp.text or "").strip()
    if not text:
        raise VendorError("Empty response from analysis model", info="Analysis error")
    return text
