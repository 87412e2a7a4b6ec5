"""
Forwarding of stored templates to the document-management system (DMS).

The DMS accepts a multipart upload: the artifact under the ``file``
field plus a handful of classification form fields. Authentication is a
shared secret in the ``api-secret`` header.

Retry policy:
- Only connection-level failures are retried (the upload never reached
  the DMS, so repeating it cannot duplicate a document).
- Timeouts after the request was sent and any HTTP status are final.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Dict

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from render_api.app.core.config import Settings
from render_api.app.core.errors import DmsNotConfiguredError, UpstreamError

logger = logging.getLogger("render_api.dms")


@dataclass(frozen=True)
class DmsMetadata:
    ref_id: str
    id_type: str = "template"
    document_type: str = "html"
    source_system: str = "LORA"
    document_sequence: str = "1"

    def as_form(self) -> Dict[str, str]:
        return {
            "ref_id": self.ref_id,
            "id_type": self.id_type,
            "document_type": self.document_type,
            "source_system": self.source_system,
            "document_sequence": self.document_sequence,
        }


@dataclass(frozen=True)
class DmsUploadResult:
    status_code: int
    body: str


class DmsClient:
    """Async multipart uploader for the DMS endpoint."""

    SECRET_HEADER = "api-secret"

    def __init__(
        self,
        url: str,
        secret: str,
        http_client: Annotated[
            httpx.AsyncClient,
            "Persistent HTTP client",
        ],
        *,
        timeout: float = 30.0,
        connect_retries: int = 2,
    ):
        self.url = url
        self.secret = secret
        self.client = http_client
        self.timeout = timeout
        self.connect_retries = connect_retries

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient,
    ) -> "DmsClient":
        if not settings.dms_configured:
            raise DmsNotConfiguredError(
                "DMS not configured. Set DMS_API_URL and DMS_API_SECRET in .env"
            )
        return cls(
            url=str(settings.dms_api_url),
            secret=settings.dms_api_secret.get_secret_value(),
            http_client=http_client,
            timeout=settings.dms_timeout_seconds,
            connect_retries=settings.dms_connect_retries,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upload(
        self,
        filename: str,
        content: bytes,
        metadata: DmsMetadata,
    ) -> DmsUploadResult:
        """
        Post ``content`` to the DMS as ``filename``.

        Raises:
            UpstreamError: the DMS was unreachable (after retries) or
                answered with a non-2xx status. ``response`` carries the
                raw body when one was received.
        """
        try:
            response = await self._post(filename, content, metadata)
        except httpx.HTTPError as exc:
            logger.warning(
                "dms_request_failed",
                extra={"dms_filename": filename, "error": str(exc)},
            )
            raise UpstreamError(f"DMS request failed: {exc}") from exc

        if not response.is_success:
            logger.warning(
                "dms_upload_rejected",
                extra={
                    "dms_filename": filename,
                    "status_code": response.status_code,
                    "response_body": response.text,
                },
            )
            raise UpstreamError(
                f"DMS returned status {response.status_code}",
                status_code=response.status_code,
                response=response.text,
            )

        logger.info(
            "dms_upload_succeeded",
            extra={
                "dms_filename": filename,
                "ref_id": metadata.ref_id,
                "status_code": response.status_code,
            },
        )
        return DmsUploadResult(response.status_code, response.text)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post(
        self,
        filename: str,
        content: bytes,
        metadata: DmsMetadata,
    ) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.connect_retries + 1),
            wait=wait_exponential(multiplier=0.2, max=2),
            retry=retry_if_exception_type(httpx.ConnectError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self.client.post(
                    self.url,
                    headers={self.SECRET_HEADER: self.secret},
                    data=metadata.as_form(),
                    files={"file": (filename, content, "text/html")},
                    timeout=self.timeout,
                )
        return response
