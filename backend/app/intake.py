from __future__ import annotations

import base64
import binascii
import logging
import random
import re
from typing import Any, Optional

from fastapi import Request
from starlette.datastructures import UploadFile

from pipeline.io_types import MAX_SEED, ImageInput, TryOnRequest
from .config import TryOnConfig
from .errors import ValidationError
from .storage import Storage, guess_content_type

logger = logging.getLogger(__name__)

# Leading integer, the rest of the text is ignored ("42abc" -> 42)
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() == "true"


def resolve_seed(seed: Any, randomize: bool) -> int:
    """Random seed in [0, MAX_SEED] when asked to, else the supplied one (0 if unparsable)."""
    if randomize:
        return random.randint(0, MAX_SEED)
    if isinstance(seed, bool):
        value = 0
    elif isinstance(seed, int):
        value = seed
    elif isinstance(seed, float) and seed.is_integer():
        value = int(seed)
    else:
        match = _LEADING_INT.match(str(seed)) if seed is not None else None
        value = int(match.group(1)) if match else 0
    if not 0 <= value <= MAX_SEED:
        raise ValidationError(f"Seed must be between 0 and {MAX_SEED}", info="Invalid seed")
    return value


def _decode_base64_image(value: str, name: str) -> ImageInput:
    content_type = "image/jpeg"
    if value.startswith("data:"):
        header, _, value = value.partition(",")
        mime = header[5:].split(";")[0]
        if mime:
            content_type = mime
    try:
        data = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"{name} is not valid base64", info="Invalid image") from e
    if not data:
        raise ValidationError("Empty image")
    ext = content_type.split("/")[-1].replace("jpeg", "jpg")
    return ImageInput(data=data, filename=f"{name}.{ext}", content_type=content_type)


def _single_upload(form: Any, field: str) -> Optional[UploadFile]:
    # Clients may repeat a field; only the first file part counts
    for value in form.getlist(field):
        if isinstance(value, UploadFile):
            return value
    return None


def _first_text(form: Any, field: str) -> Optional[str]:
    for value in form.getlist(field):
        if isinstance(value, str):
            return value
    return None


async def _from_multipart(request: Request, config: TryOnConfig) -> TryOnRequest:
    form = await request.form()
    saved: list[str] = []
    try:
        person = _single_upload(form, "personImg")
        garment = _single_upload(form, "garmentImg")
        if person is None or garment is None:
            raise ValidationError("Missing required images")

        person_path = Storage.save_upload(person, config.upload_dir, prefix="person")
        saved.append(person_path)
        garment_path = Storage.save_upload(garment, config.upload_dir, prefix="garment")
        saved.append(garment_path)

        person_data = Storage.read_bytes(person_path)
        garment_data = Storage.read_bytes(garment_path)
        if not person_data or not garment_data:
            raise ValidationError("Missing required images")

        seed = resolve_seed(_first_text(form, "seed"), _truthy(_first_text(form, "randomizeSeed")))
        person_name = person.filename or "person.jpg"
        garment_name = garment.filename or "garment.jpg"
        return TryOnRequest(
            person=ImageInput(person_data, person_name, person.content_type or guess_content_type(person_name)),
            garment=ImageInput(garment_data, garment_name, garment.content_type or guess_content_type(garment_name)),
            seed=seed,
        )
    finally:
        Storage.discard(*saved)
        await form.close()


async def _from_json(request: Request) -> TryOnRequest:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError("Request body is not valid JSON", info="Invalid request") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", info="Invalid request")
    person = body.get("personImg")
    garment = body.get("garmentImg")
    if not person or not garment or not isinstance(person, str) or not isinstance(garment, str):
        raise ValidationError("Empty image")
    return TryOnRequest(
        person=_decode_base64_image(person, "person"),
        garment=_decode_base64_image(garment, "garment"),
        seed=resolve_seed(body.get("seed"), _truthy(body.get("randomizeSeed"))),
    )


async def decode_tryon_request(request: Request, config: TryOnConfig) -> TryOnRequest:
    """Normalize a multipart or JSON try-on request into a TryOnRequest.

    Multipart parts are spooled to ``config.upload_dir`` and removed again
    before this returns, whether decoding succeeded or not.
    """
    ctype = request.headers.get("content-type", "").lower()
    if ctype.startswith("multipart/form-data"):
        return await _from_multipart(request, config)
    if ctype.startswith("application/json"):
        return await _from_json(request)
    raise ValidationError("Unsupported content type", info="Unsupported content type", status_code=415)
