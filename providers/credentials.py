from __future__ import annotations

import time
from typing import Optional

import jwt

from backend.app.config import TryOnConfig


def issue_vendor_token(config: TryOnConfig, now: Optional[float] = None) -> str:
    """Sign a short-lived HS256 bearer token for the try-on vendor.

    The token carries the access key id as issuer and expires after
    ``config.token_ttl_s``. Raises ConfigurationError before anything is
    sent when the key pair or the base URL is missing.
    """
    _, key_id, secret = config.require_kolors()
    ts = int(now if now is not None else time.time())
    claims = {
        "iss": key_id,
        "iat": ts,
        # small skew allowance for the vendor's clock
        "nbf": ts - 5,
        "exp": ts + config.token_ttl_s,
    }
    return jwt.encode(claims, secret, algorithm="HS256", headers={"typ": "JWT"})


def bearer_headers(token: str) -> dict[str, str]:
    return {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}
