import base64

from sdk.python import tryon_client
from sdk.python.tryon_client import TryOnClient

from conftest import FakeResponse


def test_try_on_posts_multipart(monkeypatch, tmp_path):
    person = tmp_path / "p.jpg"
    garment = tmp_path / "g.jpg"
    person.write_bytes(b"P")
    garment.write_bytes(b"G")
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return FakeResponse(json_data={"image": base64.b64encode(b"OUT").decode(), "seed": 5, "info": "Success"})

    monkeypatch.setattr(tryon_client.requests, "post", fake_post)

    client = TryOnClient("http://api.test/")
    result = client.try_on(str(person), str(garment), seed=5)

    url, kwargs = calls[0]
    assert url == "http://api.test/api/tryon"
    assert kwargs["data"] == {"seed": "5", "randomizeSeed": "false"}
    assert set(kwargs["files"]) == {"personImg", "garmentImg"}

    out = client.download_result(result, str(tmp_path / "out" / "r.jpg"))
    assert (tmp_path / "out" / "r.jpg").read_bytes() == b"OUT"
    assert out.endswith("r.jpg")
