from fastapi import Depends, Request

from .config import TryOnConfig, get_config
from .errors import PayloadTooLargeError


async def enforce_max_upload_size(request: Request, config: TryOnConfig = Depends(get_config)) -> None:
    cl = request.headers.get("content-length")
    if not cl:
        return
    try:
        size = int(cl)
    except ValueError:
        return
    if size > config.max_upload_mb * 1024 * 1024:
        raise PayloadTooLargeError(f"Upload exceeds {config.max_upload_mb} MB")
