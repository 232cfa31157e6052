from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Callable, Optional

from backend.app.config import TryOnConfig
from backend.app.errors import ConfigurationError
from backend.app.storage import build_image_store
from providers.base import TryOnProvider
from providers.fal_api import FalSync
from providers.huggingface import HuggingFaceSync
from providers.kolors_api import KolorsSubmitPoll
from .io_types import TryOnRequest, TryOnResult
from .post_processing import normalize_image

logger = logging.getLogger(__name__)


class TryOnPipeline:
    def __init__(self, config: TryOnConfig, provider: TryOnProvider):
        self.config = config
        self.provider = provider

    @classmethod
    def from_config(
        cls,
        config: TryOnConfig,
        session: Any = None,
        sleep: Optional[Callable[[float], object]] = None,
        s3_client: Any = None,
        fal: Any = None,
    ) -> "TryOnPipeline":
        store = build_image_store(config, s3_client=s3_client)
        backend = config.provider
        if backend == "kolors":
            provider: TryOnProvider = KolorsSubmitPoll(config, store, session=session, sleep=sleep)
        elif backend == "huggingface":
            provider = HuggingFaceSync(config, session=session)
        elif backend == "fal":
            provider = FalSync(config, store, client=fal, session=session)
        else:
            raise ConfigurationError(f"Unknown try-on provider: {backend}")
        return cls(config, provider)

    def run(self, request: TryOnRequest, cancel: Optional[threading.Event] = None) -> TryOnResult:
        cancel = cancel or threading.Event()
        if self.config.normalize_images:
            request = dataclasses.replace(
                request,
                person=normalize_image(request.person, self.config.normalize_max_side, self.config.normalize_quality),
                garment=normalize_image(request.garment, self.config.normalize_max_side, self.config.normalize_quality),
            )
        logger.info("Running try-on with provider %s (seed=%d)", self.provider.name, request.seed)
        return self.provider.run(request, cancel)
