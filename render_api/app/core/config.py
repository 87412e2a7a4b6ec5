"""
Centralized configuration for the render service.

Settings are parsed once at startup, frozen, and handed to each
component explicitly. No module below ``app.main`` reads the
environment on its own.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings parsed from the environment (and ``.env``).

    Environment variable names are the upper-cased field names, e.g.
    ``TEMPLATES_DIR`` or ``DMS_API_URL``.
    """

    # ---------------------------------------------------------------------
    # Storage
    # ---------------------------------------------------------------------

    templates_dir: Annotated[
        Path,
        Field(
            default=Path("templates"),
            description="Flat directory holding <slug>-v<version>.html files",
        ),
    ]

    serialize_versions: Annotated[
        bool,
        Field(
            default=False,
            description=(
                "Serialize version allocation per slug inside this process. "
                "Off by default: concurrent saves of one name may collide."
            ),
        ),
    ]

    # ---------------------------------------------------------------------
    # Network
    # ---------------------------------------------------------------------

    server_host: str = "0.0.0.0"
    server_port: Annotated[int, Field(default=8080, ge=1, le=65535)]

    allowed_origins: Annotated[
        str,
        Field(
            default="",
            description="Comma-separated list of CORS origins",
        ),
    ]

    # ---------------------------------------------------------------------
    # Document management system
    # ---------------------------------------------------------------------

    dms_api_url: Optional[AnyHttpUrl] = None
    dms_api_secret: Optional[SecretStr] = None

    dms_timeout_seconds: Annotated[float, Field(default=30.0, gt=0)]
    dms_connect_retries: Annotated[int, Field(default=2, ge=0, le=10)]

    # ---------------------------------------------------------------------
    # PDF rendering
    # ---------------------------------------------------------------------

    chrome_path: Optional[Path] = None

    pdf_timeout_seconds: Annotated[float, Field(default=60.0, gt=0)]
    pdf_default_wait_ms: Annotated[int, Field(default=500, ge=0)]

    # ---------------------------------------------------------------------
    # Logging
    # ---------------------------------------------------------------------

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @property
    def origins(self) -> List[str]:
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]

    @property
    def dms_configured(self) -> bool:
        return bool(
            self.dms_api_url
            and self.dms_api_secret
            and self.dms_api_secret.get_secret_value()
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return Settings()
