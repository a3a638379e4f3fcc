"""API Configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """Settings for the voxrelay API."""

    model_config = SettingsConfigDict(env_prefix="VOXRELAY_API_", extra="ignore")

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # API
    api_prefix: str = "/api/v1"
    title: str = "voxrelay API"
    description: str = "Voice and chat relay between Teams and an AI inference endpoint"
    version: str = "0.1.0"

    # Logging
    json_logs: bool = True


settings = APISettings()
