"""HTTP client for the video-generation provider."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import httpx

from video_relay.core.config import Settings
from video_relay.core.exceptions import DownloadError, UpstreamError
from video_relay.provider.models import ProviderTaskRequest

logger = logging.getLogger(__name__)

CREATE_TASK_PATH = "/api/v1/jobs/createTask"
SUCCESS_CODE = 200
DOWNLOAD_CHUNK_BYTES = 1024 * 1024


class ProviderClient:
    """
    Issues task-creation calls and streams result downloads.

    One ``httpx.AsyncClient`` is shared for the lifetime of the application;
    ``transport`` lets tests substitute ``httpx.MockTransport``.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        timeout_seconds: float = 30.0,
        download_timeout_seconds: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout_seconds)
        self.download_timeout = httpx.Timeout(download_timeout_seconds)
        self._http = httpx.AsyncClient(transport=transport, follow_redirects=True)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "ProviderClient":
        return cls(
            api_key=settings.PROVIDER_API_KEY,
            base_url=settings.PROVIDER_BASE_URL,
            timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
            download_timeout_seconds=settings.DOWNLOAD_TIMEOUT_SECONDS,
            **kwargs,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def create_task(self, request: ProviderTaskRequest) -> str:
        """Create a provider task and return the provider task id."""
        url = f"{self.base_url}{CREATE_TASK_PATH}"
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            response = await self._http.post(
                url, json=request.to_payload(), headers=headers, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Provider createTask timed out: {e}")
            raise UpstreamError("Provider API timed out")
        except httpx.HTTPError as e:
            logger.warning(f"Provider createTask failed: {e}")
            raise UpstreamError(f"Provider API unreachable: {e}")

        if not response.is_success:
            logger.warning(f"Provider createTask returned HTTP {response.status_code}: {response.text[:500]}")
            raise UpstreamError(f"Provider API error: {response.text}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError:
            raise UpstreamError("Provider API returned a non-JSON response", status_code=response.status_code)

        if not isinstance(data, dict):
            raise UpstreamError("Provider API returned an unexpected response", status_code=response.status_code)

        body = data.get("data") if isinstance(data.get("data"), dict) else {}
        provider_task_id = body.get("taskId")
        code = data.get("code")
        if code != SUCCESS_CODE or not provider_task_id:
            message = data.get("msg") or "Provider API error"
            logger.warning(f"Provider createTask rejected: code={code} msg={message}")
            raise UpstreamError(message, status_code=code if isinstance(code, int) else response.status_code)

        return str(provider_task_id)

    async def download_artifact(self, source_url: str, destination: Path) -> Path:
        """
        Stream ``source_url`` into ``destination``.

        Bytes go to a sibling ``.part`` file which is renamed into place only
        after the body has been fully received.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")

        try:
            async with self._http.stream("GET", source_url, timeout=self.download_timeout) as response:
                if not response.is_success:
                    raise DownloadError(f"Download failed with status {response.status_code}")
                with open(partial, "wb") as fh:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_BYTES):
                        fh.write(chunk)
            os.replace(partial, destination)
        except DownloadError:
            _remove_quietly(partial)
            raise
        except (httpx.HTTPError, OSError) as e:
            _remove_quietly(partial)
            raise DownloadError(f"Download failed: {e}") from e

        return destination


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove partial download {path}: {e}")
