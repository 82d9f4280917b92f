from __future__ import annotations

from pydantic import Field

from vaultswap.config import Settings


class ApiSettings(Settings):
    redis_url: str = Field(..., alias="REDIS_URL")
    request_max_age_seconds: int = Field(60, alias="REQUEST_MAX_AGE_SECONDS")
    nonce_ttl_seconds: int = Field(120, alias="NONCE_TTL_SECONDS")

    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8080, alias="API_PORT")


def load_settings() -> ApiSettings:
    return ApiSettings()
