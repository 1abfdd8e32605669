from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

OutputFormat = Literal["pdf", "tiff", "png", "jpeg"]


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    scan_output_dir: Path = Path("/tmp/scan-bridge")
    scan_resolution: int = Field(default=300, ge=75, le=1200)
    # TIFF pages combine into a cleaner PDF than scanimage's own PDF output
    output_format: OutputFormat = "tiff"

    scanner_device: str = ""
    scan_source: str = ""
    page_width: float = Field(default=0, ge=0)
    page_height: float = Field(default=0, ge=0)
    swskip: int = Field(default=0, ge=0, le=100)
    duplex: bool = False

    scanimage_binary: str = "scanimage"
    img2pdf_binary: str = "img2pdf"
    single_scan_timeout_seconds: int = 120
    duplex_scan_timeout_seconds: int = 300

    paperless_api_url: str = "http://localhost:8000"
    paperless_api_token: str = ""
    paperless_timeout_seconds: int = 60

    @field_validator("output_format", mode="before")
    @classmethod
    def _lowercase_format(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("paperless_api_url")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        if value and not value.startswith(("http://", "https://")):
            raise ValueError("Paperless API URL must be a valid HTTP/HTTPS URL")
        return value

    def upload_errors(self) -> list[str]:
        """Return the problems that prevent uploading, empty when ready."""
        errors: list[str] = []
        if not self.paperless_api_url:
            errors.append("Paperless API URL is required")
        if not self.paperless_api_token:
            errors.append("Paperless API Token is required")
        return errors

    @property
    def paperless_post_document_url(self) -> str:
        return f"{self.paperless_api_url.rstrip('/')}/api/documents/post_document/"
