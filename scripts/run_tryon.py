import argparse
import base64
import os

import requests

from backend.app.config import TryOnConfig, settings
from backend.app.intake import resolve_seed
from backend.app.logging_config import setup_logging
from backend.app.storage import guess_content_type
from pipeline.io_types import ImageInput, TryOnRequest
from pipeline.tryon import TryOnPipeline


def _load(path: str) -> ImageInput:
    with open(path, "rb") as f:
        data = f.read()
    name = os.path.basename(path)
    return ImageInput(data=data, filename=name, content_type=guess_content_type(name))


def main():
    parser = argparse.ArgumentParser(description="Run a virtual try-on against the configured provider")
    parser.add_argument("--person", required=True, help="Path to person image")
    parser.add_argument("--garment", required=True, help="Path to garment image")
    parser.add_argument("--seed", default="0", help="Generation seed (0-999999)")
    parser.add_argument("--randomize-seed", action="store_true", help="Draw a random seed")
    parser.add_argument("--out", required=True, help="Output image path")
    args = parser.parse_args()

    setup_logging()
    config = TryOnConfig.from_settings(settings)
    request = TryOnRequest(
        person=_load(args.person),
        garment=_load(args.garment),
        seed=resolve_seed(args.seed, args.randomize_seed),
    )
    result = TryOnPipeline.from_config(config).run(request)

    if result.is_url:
        r = requests.get(result.image, timeout=config.http_timeout_s)
        r.raise_for_status()
        data = r.content
    else:
        data = base64.b64decode(result.image)
    os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
    with open(args.out, "wb") as dst:
        dst.write(data)
    print(f"Saved: {args.out} (seed={result.seed})")


if __name__ == "__main__":
    main()
