from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import fal_client
import requests

from backend.app.config import TryOnConfig
from backend.app.errors import ClientDisconnected, ConfigurationError, VendorError
from pipeline.io_types import TryOnRequest, TryOnResult
from .base import ImageStore

logger = logging.getLogger(__name__)


def validate_image_url(url: str, session: Any, timeout: float = 10.0) -> None:
    """HEAD the URL and insist on a 2xx ``image/*`` answer."""
    try:
        r = session.head(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as e:
        raise VendorError(f"URL validation failed: {e}", info="Upload error") from e
    ctype = r.headers.get("content-type", "")
    if not (200 <= r.status_code < 300) or not ctype.startswith("image/"):
        raise VendorError(
            f"URL validation failed (content-type: {ctype or None}, status: {r.status_code})",
            info="Upload error",
        )


def validate_image_urls(urls: list[str], session: Any, timeout: float = 10.0) -> None:
    # Independent checks; the first failure (in input order) is raised
    with ThreadPoolExecutor(max_workers=len(urls) or 1) as pool:
        list(pool.map(lambda u: validate_image_url(u, session, timeout), urls))


class FalSync:
    """Fal.ai hosted try-on model.

    Fal needs reachable image URLs, so both inputs go through the object
    store first and are checked with HEAD requests before the model runs.
    """

    name = "fal"

    def __init__(self, config: TryOnConfig, store: ImageStore, client: Any = None, session: Any = None) -> None:
        self.config = config
        self.store = store
        self._client = client
        self.session = session or requests.Session()

    def _fal(self):
        if self._client is None:
            self._client = fal_client.SyncClient(key=self.config.require_fal())
        return self._client

    @staticmethod
    def _on_queue_update(update: Any) -> None:
        if isinstance(update, fal_client.InProgress):
            for log in update.logs or []:
                logger.info("fal: %s", log.get("message"))

    def run(self, request: TryOnRequest, cancel: threading.Event) -> TryOnResult:
        self.config.require_fal()
        if not self.store.returns_urls:
            raise ConfigurationError("Fal.ai provider requires object storage (set TRYON_IMAGE_STORE=s3)")
        client = self._fal()

        model_url = self.store.put(request.person.data, request.person.filename, request.person.content_type)
        garment_url = self.store.put(request.garment.data, request.garment.filename, request.garment.content_type)
        validate_image_urls([model_url, garment_url], self.session, timeout=min(10.0, self.config.http_timeout_s))

        if cancel.is_set():
            raise ClientDisconnected("Client disconnected before submission", seed=request.seed)
        result = client.subscribe(
            self.config.fal_endpoint,
            arguments={
                "model_image": model_url,
                "garment_image": garment_url,
                "category": self.config.fal_category,
            },
            with_logs=True,
            on_queue_update=self._on_queue_update,
        )
        images = (result or {}).get("images") or []
        url = images[0].get("url") if images and isinstance(images[0], dict) else None
        if not url:
            raise VendorError("No image URL returned from Fal.ai API", info="Processing error")
        return TryOnResult(image=url, seed=request.seed, info="Success", is_url=True)
