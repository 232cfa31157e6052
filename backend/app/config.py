from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

import yaml
from fastapi import Request

from .errors import ConfigurationError


CONFIG_PATH = os.environ.get("TRYON_CONFIG", "configs/tryon.yaml")


class Settings:
    def __init__(self, path: Optional[str] = None) -> None:
        self._cfg: dict[str, Any] = {}
        path = path or CONFIG_PATH
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                self._cfg = yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        # Env wins over YAML
        env_key = key.upper().replace(".", "_")
        if env_key in os.environ:
            return os.environ[env_key]

        # Dot path lookup in YAML
        parts = key.split(".")
        cur: Any = self._cfg
        for p in parts:
            if isinstance(cur, dict) and p in cur:
                cur = cur[p]
            else:
                return default
        return cur


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_optional_float(value: Any) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    return float(value)


@dataclass(frozen=True)
class TryOnConfig:
    """Process-wide try-on settings.

    Built once at startup and passed explicitly to the credential issuer,
    the providers and the poll loop. Missing secrets are not an error here;
    they are reported per request by the ``require_*`` helpers so that a
    misconfigured deployment still serves ``/health``.
    """

    provider: str = "kolors"
    image_store: str = "inline"

    kolors_api_url: Optional[str] = None
    access_key_id: Optional[str] = None
    access_key_secret: Optional[str] = None
    token_ttl_s: int = 1800

    initial_wait_s: float = 9.0
    poll_interval_s: float = 1.0
    max_retries: int = 12
    max_wait_s: Optional[float] = None
    abort_on_poll_error: bool = False
    http_timeout_s: float = 30.0

    hf_api_url: Optional[str] = None
    hf_api_key: Optional[str] = None

    fal_key: Optional[str] = None
    fal_endpoint: str = "fashn/tryon"
    fal_category: str = "tops"

    s3_bucket: Optional[str] = None
    s3_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_prefix: str = "tryon/"
    cdn_base_url: Optional[str] = None
    presign_ttl_s: int = 3600

    normalize_images: bool = False
    normalize_max_side: int = 1024
    normalize_quality: int = 90

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"

    upload_dir: str = os.path.join("storage", "uploads")
    max_upload_mb: int = 25

    @classmethod
    def from_settings(cls, settings: Settings) -> "TryOnConfig":
        # Flat env names kept for compatibility with existing deployments
        def env_or(key: str, env: str, default: Any = None) -> Any:
            if env in os.environ:
                return os.environ[env]
            return settings.get(key, default)

        ttl = int(settings.get("kolors.token_ttl_s", 1800))
        return cls(
            provider=str(settings.get("tryon.provider", "kolors")).lower(),
            image_store=str(settings.get("tryon.image_store", "inline")).lower(),
            kolors_api_url=env_or("kolors.api_url", "KOLORS_API_URL"),
            access_key_id=env_or("kolors.access_key_id", "ACCESS_KEY_ID"),
            access_key_secret=env_or("kolors.access_key_secret", "ACCESS_KEY_SECRET"),
            token_ttl_s=max(60, min(3600, ttl)),
            initial_wait_s=float(settings.get("poll.initial_wait_s", 9.0)),
            poll_interval_s=float(settings.get("poll.interval_s", 1.0)),
            max_retries=max(1, int(settings.get("poll.max_retries", 12))),
            max_wait_s=_as_optional_float(settings.get("poll.max_wait_s")),
            abort_on_poll_error=_as_bool(settings.get("poll.abort_on_error", False)),
            http_timeout_s=float(settings.get("http.timeout_s", 30.0)),
            hf_api_url=env_or("huggingface.api_url", "HF_API_URL"),
            hf_api_key=env_or("huggingface.api_key", "HF_API_KEY"),
            fal_key=env_or("fal.key", "FAL_KEY"),
            fal_endpoint=str(settings.get("fal.endpoint", "fashn/tryon")),
            fal_category=str(settings.get("fal.category", "tops")),
            s3_bucket=settings.get("s3.bucket"),
            s3_region=settings.get("s3.region"),
            s3_endpoint_url=settings.get("s3.endpoint_url"),
            s3_access_key_id=settings.get("s3.access_key_id"),
            s3_secret_access_key=settings.get("s3.secret_access_key"),
            s3_prefix=str(settings.get("s3.prefix", "tryon/")),
            cdn_base_url=settings.get("cdn.base_url"),
            presign_ttl_s=int(settings.get("s3.presign_ttl_s", 3600)),
            normalize_images=_as_bool(settings.get("images.normalize", False)),
            normalize_max_side=int(settings.get("images.max_side", 1024)),
            normalize_quality=int(settings.get("images.quality", 90)),
            gemini_api_key=env_or("gemini.api_key", "GEMINI_API_KEY"),
            gemini_model=str(settings.get("gemini.model", "gemini-2.5-flash")),
            upload_dir=str(settings.get("storage.upload_dir", os.path.join("storage", "uploads"))),
            max_upload_mb=int(settings.get("max.upload_mb", 25)),
        )

    def require_kolors(self) -> tuple[str, str, str]:
        if not self.kolors_api_url or not self.access_key_id or not self.access_key_secret:
            raise ConfigurationError(
                "Missing API configuration. Please set KOLORS_API_URL, ACCESS_KEY_ID, "
                "and ACCESS_KEY_SECRET in your environment."
            )
        return self.kolors_api_url, self.access_key_id, self.access_key_secret

    def require_huggingface(self) -> tuple[str, str]:
        if not self.hf_api_url or not self.hf_api_key:
            raise ConfigurationError("Missing API configuration. Please set HF_API_URL and HF_API_KEY.")
        return self.hf_api_url, self.hf_api_key

    def require_fal(self) -> str:
        if not self.fal_key:
            raise ConfigurationError("Missing configuration. Fal.ai API key not configured.")
        return self.fal_key

    def require_s3(self) -> str:
        if not self.s3_bucket:
            raise ConfigurationError("Missing object storage configuration. Please set S3_BUCKET.")
        return self.s3_bucket

    def require_gemini(self) -> str:
        if not self.gemini_api_key:
            raise ConfigurationError("Missing configuration. Please set GEMINI_API_KEY.")
        return self.gemini_api_key


settings = Settings()


def get_config(request: Request) -> TryOnConfig:
    """FastAPI dependency returning the config built at startup."""
    config = getattr(request.app.state, "config", None)
    if config is None:
        config = TryOnConfig.from_settings(settings)
        request.app.state.config = config
    return config
