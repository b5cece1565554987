"""Async client for the external asset store and its publish automation.

Artwork files are uploaded to the asset store, which serves them from its
CDN. After any change that affects what the public site shows, the publish
automation endpoint is hit with ``GET <url>?asset=<id>``; that call is fire
and forget and its failures are only logged.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx
import structlog

from artmint.config import settings

log = structlog.get_logger()

# Strong references to in-flight publish calls so they are not collected
_background_tasks: set[asyncio.Task] = set()


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class UploadedFile:
    """Parsed result of an asset-store upload."""

    uid: str
    url: str
    file_size: int | None = None


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------

class CmsTimeoutError(Exception):
    """Raised when the asset store does not answer in time."""


class CmsConnectionError(Exception):
    """Raised when the asset store is unreachable."""


class CmsUploadError(Exception):
    """Raised when the asset store rejects an upload or answers garbage."""


# ---------------------------------------------------------------------------
# CmsClient
# ---------------------------------------------------------------------------

class CmsClient:
    """Async client for asset uploads and publish triggers."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        publish_url: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.CMS_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.CMS_API_KEY
        self.publish_url = (
            publish_url if publish_url is not None else settings.CMS_PUBLISH_AUTOMATION_URL
        )
        self.timeout = timeout or settings.CMS_TIMEOUT_SECONDS

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        filename: str,
        content: bytes,
        content_type: str | None = None,
    ) -> UploadedFile:
        """Upload one file and return its uid and public URL.

        Raises:
            CmsTimeoutError: on request timeout.
            CmsConnectionError: on connection failure.
            CmsUploadError: on a non-2xx answer or a malformed body.
        """
        files = {
            "file": (filename, content, content_type or "application/octet-stream")
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"Authorization": self.api_key},
            ) as client:
                response = await client.post("/assets", files=files)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise CmsTimeoutError(
                f"Asset store request timed out after {self.timeout}s"
            ) from exc
        except httpx.ConnectError as exc:
            raise CmsConnectionError(
                f"Cannot connect to asset store at {self.base_url}"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise CmsUploadError(
                f"Asset store rejected upload ({exc.response.status_code})"
            ) from exc

        return self._parse_upload(response.json())

    @staticmethod
    def _parse_upload(data: dict) -> UploadedFile:
        asset = data.get("asset", data)
        try:
            return UploadedFile(
                uid=asset["uid"],
                url=asset["url"],
                file_size=asset.get("file_size"),
            )
        except (KeyError, TypeError) as exc:
            raise CmsUploadError("Malformed upload response") from exc

    # ------------------------------------------------------------------
    # Publish automation
    # ------------------------------------------------------------------

    async def trigger_publish(self, asset_id) -> bool:
        """Hit the publish automation endpoint for one asset.

        Never raises; returns True when the automation accepted the call.
        """
        if not self.publish_url:
            log.debug("publish_trigger_skipped", asset_id=str(asset_id))
            return False

        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                response = await client.get(
                    self.publish_url,
                    params={"asset": str(asset_id)},
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            log.error("publish_trigger_error", asset_id=str(asset_id), error=str(exc))
            return False

        if response.is_error:
            log.error(
                "publish_trigger_failed",
                asset_id=str(asset_id),
                status=response.status_code,
                body=response.text[:500],
            )
            return False

        log.info("publish_triggered", asset_id=str(asset_id))
        return True


def schedule_publish(asset_id, client: CmsClient | None = None) -> asyncio.Task:
    """Fire the publish trigger in the background and return the task."""
    cms = client or CmsClient()
    task = asyncio.create_task(cms.trigger_publish(asset_id))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
