import io
from typing import Any, Optional

import pytest
import requests
from fastapi.testclient import TestClient
from PIL import Image

from backend.app.config import TryOnConfig, get_config
from backend.app.main import app, get_analyzer, get_pipeline_factory
from pipeline.tryon import TryOnPipeline


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, text: str = "", headers: Optional[dict] = None, content: bytes = b"") -> None:
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.headers = headers or {}
        self.content = content

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


def submit_reply(status: str = "success", task_id: str = "abc") -> FakeResponse:
    return FakeResponse(json_data={"result": {"status": status, "result": task_id}})


def query_reply(status: str, result: Optional[str] = None, message: Optional[str] = None) -> FakeResponse:
    body = {"status": status}
    if result is not None:
        body["result"] = result
    if message is not None:
        body["message"] = message
    return FakeResponse(json_data={"result": body})


class FakeSession:
    """Scripted stand-in for requests.Session; records every call."""

    def __init__(self, post=None, gets=(), heads=None) -> None:
        self._post = post
        self._gets = list(gets)
        self._heads = heads or {}
        self.posts: list = []
        self.gets: list = []
        self.head_calls: list = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if isinstance(self._post, Exception):
            raise self._post
        return self._post

    def get(self, url, **kwargs):
        self.gets.append((url, kwargs))
        item = self._gets.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def head(self, url, **kwargs):
        self.head_calls.append(url)
        return self._heads[url]


def make_image(size=(64, 96), color=(200, 30, 30), fmt="PNG", mode="RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color if mode == "RGB" else color + (255,)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image()


@pytest.fixture
def config(tmp_path) -> TryOnConfig:
    return TryOnConfig(
        kolors_api_url="https://vendor.test/kolors/",
        access_key_id="test-key-id",
        access_key_secret="test-key-secret",
        upload_dir=str(tmp_path / "uploads"),
    )


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def make_client(config, sleeps):
    """Build a TestClient whose pipeline talks to ``session`` and never really sleeps."""

    def _make(session=None, cfg: Optional[TryOnConfig] = None, analyzer=None, **pipeline_kwargs) -> TestClient:
        cfg = cfg or config
        app.dependency_overrides[get_config] = lambda: cfg

        def factory(c):
            return TryOnPipeline.from_config(c, session=session, sleep=sleeps.append, **pipeline_kwargs)

        app.dependency_overrides[get_pipeline_factory] = lambda: factory
        if analyzer is not None:
            app.dependency_overrides[get_analyzer] = lambda: analyzer
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()
