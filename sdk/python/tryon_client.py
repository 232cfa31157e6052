import base64
import os

import requests


class TryOnClient:
    def __init__(self, base_url: str = "http://127.0.0.1:8000", timeout: float = 120.0) -> None:
        self.base_url = base_url.rstrip("/")
        # Submit + warm-up + polling can take a while on the server side
        self.timeout = timeout

    def try_on(
        self,
        person_image_path: str,
        garment_image_path: str,
        seed: int = 0,
        randomize_seed: bool = False,
    ) -> dict:
        url = f"{self.base_url}/api/tryon"
        with open(person_image_path, "rb") as person, open(garment_image_path, "rb") as garment:
            files = {
                "personImg": (os.path.basename(person_image_path), person, "image/jpeg"),
                "garmentImg": (os.path.basename(garment_image_path), garment, "image/jpeg"),
            }
            data = {"seed": str(seed), "randomizeSeed": "true" if randomize_seed else "false"}
            r = requests.post(url, files=files, data=data, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def analyze(self, image_url: str) -> str:
        r = requests.post(
            f"{self.base_url}/api/tryon",
            params={"action": "analyze"},
            json={"image_url": image_url},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()["matching_analysis"]

    def download_result(self, result: dict, out_path: str) -> str:
        """Write the image of a successful ``try_on`` response to ``out_path``."""
        url = result.get("generated_image_url")
        if url:
            r = requests.get(url, timeout=60)
            r.raise_for_status()
            data = r.content
        else:
            data = base64.b64decode(result["image"])
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        with open(out_path, "wb") as f:
            f.write(data)
        return out_path
