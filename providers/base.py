from __future__ import annotations

import threading
from typing import Protocol

from pipeline.io_types import TryOnRequest, TryOnResult


class ImageStore(Protocol):
    returns_urls: bool

    # Returns what the vendor should receive: base64 text or a reachable URL
    def put(self, data: bytes, filename: str, content_type: str) -> str: ...


class TryOnProvider(Protocol):
    name: str

    def run(self, request: TryOnRequest, cancel: threading.Event) -> TryOnResult: ...
