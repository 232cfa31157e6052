import base64
import dataclasses
import io
import threading

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from backend.app.storage import InlineImageStore
from pipeline.io_types import ImageInput, TryOnRequest
from providers.kolors_api import KolorsSubmitPoll
from remote.server import app as vendor_app

from conftest import make_image


@pytest.fixture
def vendor(monkeypatch, config):
    monkeypatch.setattr(vendor_app.state, "secret", config.access_key_secret)
    monkeypatch.setattr(vendor_app.state, "pending_polls", 2)
    return TestClient(vendor_app, base_url="http://vendor")


@pytest.fixture
def vendor_config(config):
    return dataclasses.replace(config, kolors_api_url="http://vendor/")


def test_submit_and_poll_against_mock_vendor(vendor, vendor_config, sleeps):
    person = make_image(size=(80, 120), color=(240, 220, 200))
    garment = make_image(size=(40, 40), color=(0, 0, 255))
    request = TryOnRequest(ImageInput(person, "p.png", "image/png"), ImageInput(garment, "g.png", "image/png"), seed=314)

    result = KolorsSubmitPoll(vendor_config, InlineImageStore(), session=vendor, sleep=sleeps.append).run(
        request, threading.Event()
    )

    assert result.seed == 314
    assert sleeps == [9.0, 1.0, 1.0]
    im = Image.open(io.BytesIO(base64.b64decode(result.image)))
    assert im.size == (80, 120)
    # garment pasted in the middle
    assert im.getpixel((40, 60))[2] > 200


def test_mock_vendor_rejects_bad_token(vendor):
    r = vendor.post(
        "/Submit",
        json={"humanImage": "", "clothImage": "", "seed": 1},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert r.status_code == 401


def test_route_end_to_end_against_mock_vendor(make_client, vendor, vendor_config, png_bytes):
    client = make_client(vendor, cfg=vendor_config)
    r = client.post(
        "/api/tryon",
        files={
            "personImg": ("person.png", png_bytes, "image/png"),
            "garmentImg": ("garment.png", make_image(color=(0, 255, 0)), "image/png"),
        },
        data={"seed": "8", "randomizeSeed": "false"},
    )
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {"image", "seed", "info"}
    assert body["seed"] == 8
    assert body["info"] == "Success"
    Image.open(io.BytesIO(base64.b64decode(body["image"]))).verify()


def test_wrong_secret_is_proxied_as_401(make_client, vendor, vendor_config, png_bytes):
    cfg = dataclasses.replace(vendor_config, access_key_secret="someone-else")
    files = {"personImg": ("p.png", png_bytes, "image/png"), "garmentImg": ("g.png", png_bytes, "image/png")}
    r = make_client(vendor, cfg=cfg).post("/api/tryon", files=files, data={"seed": "2"})
    assert r.status_code == 401
    assert r.json()["info"] == "Submission error"
    assert r.json()["seed"] == 2
