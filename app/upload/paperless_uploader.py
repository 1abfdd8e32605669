import mimetypes
from pathlib import Path

import httpx

from app.config.settings import Settings
from app.logging.logger import Log
from app.upload.base import BaseUploader
from app.upload.exceptions import UploadError


class PaperlessUploader(BaseUploader):
    """Uploads documents to Paperless-ngx through its post_document endpoint."""

    def __init__(
        self,
        *,
        post_document_url: str,
        api_token: str,
        timeout_seconds: int,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = post_document_url
        self._client = httpx.Client(
            headers={"Authorization": f"Token {api_token}"},
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaperlessUploader":
        return cls(
            post_document_url=settings.paperless_post_document_url,
            api_token=settings.paperless_api_token,
            timeout_seconds=settings.paperless_timeout_seconds,
        )

    def upload(self, path: Path) -> str:
        if not path.is_file():
            raise UploadError(f"Upload file not found: {path}")
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        Log.info(f"Uploading {path.name} to Paperless-ngx...")
        try:
            with path.open("rb") as handle:
                response = self._client.post(
                    self._url,
                    files={"document": (path.name, handle, mime_type)},
                    data={"title": path.stem},
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UploadError(
                f"Paperless rejected {path.name}: "
                f"{exc.response.status_code} {exc.response.text.strip()}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Paperless upload network error: {exc}") from exc
        except OSError as exc:
            raise UploadError(f"Could not read {path.name}: {exc}") from exc

        task_id = response.text.strip().strip('"')
        Log.info(f"Uploaded {path.name} (task {task_id})")
        return task_id

    def close(self) -> None:
        self._client.close()
