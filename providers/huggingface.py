from __future__ import annotations

import logging
import threading
from typing import Any

import requests

from backend.app.config import TryOnConfig
from backend.app.errors import ClientDisconnected, VendorError
from pipeline.io_types import TryOnRequest, TryOnResult

logger = logging.getLogger(__name__)


class HuggingFaceSync:
    """Single blocking call to a try-on model hosted behind a Hugging Face endpoint.

    The endpoint takes both images as multipart files and answers with
    ``{"imageUrl": ...}``.
    """

    name = "huggingface"

    def __init__(self, config: TryOnConfig, session: Any = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def run(self, request: TryOnRequest, cancel: threading.Event) -> TryOnResult:
        url, api_key = self.config.require_huggingface()
        if cancel.is_set():
            raise ClientDisconnected("Client disconnected before submission", seed=request.seed)
        files = {
            "personImg": ("person.jpg", request.person.data, request.person.content_type),
            "garmentImg": ("garment.jpg", request.garment.data, request.garment.content_type),
        }
        logger.info("Sending images to Hugging Face endpoint")
        try:
            r = self.session.post(
                url,
                files=files,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self.config.http_timeout_s,
            )
        except requests.RequestException as e:
            raise VendorError(f"Failed to process images: {e}", info="Http Timeout, please try again later") from e
        try:
            data = r.json()
        except ValueError:
            data = {}
        image_url = data.get("imageUrl") if isinstance(data, dict) else None
        if not (200 <= r.status_code < 300) or not image_url:
            logger.warning("Hugging Face endpoint failed with HTTP %s", r.status_code)
            raise VendorError("Failed to generate image")
        return TryOnResult(image=image_url, seed=request.seed, info="Success", is_url=True)
