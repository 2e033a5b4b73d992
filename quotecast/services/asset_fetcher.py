"""Background image acquisition from Unsplash."""

import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlencode

import httpx

from quotecast.exceptions import (
    AssetNotFoundError,
    TransferFailedError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


@dataclass
class FetchedAsset:
    path: Path
    photographer: str | None = None
    photographer_url: str | None = None


class UnsplashAssetFetcher:
    """Resolves a photo id to metadata, then downloads it at render size.

    Raises:
        AssetNotFoundError: the provider has no such photo
        UpstreamUnavailableError: provider unreachable, misconfigured or rate limiting
        TransferFailedError: metadata resolved but the image bytes did not arrive
    """

    def __init__(
        self,
        access_key: str,
        *,
        api_base: str = "https://api.unsplash.com",
        timeout_s: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.access_key = access_key
        self.api_base = api_base.rstrip("/")
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Client-ID {self.access_key}",
            "Accept-Version": "v1",
        }

    async def fetch(self, asset_id: str, dest_path: Path, width: int, height: int) -> FetchedAsset:
        if not self.access_key:
            raise UpstreamUnavailableError("Image provider access key is not configured")

        photo = await self._get_photo(asset_id)

        download_location = (photo.get("links") or {}).get("download_location")
        if download_location:
            await self._track_download(download_location)

        raw_url = (photo.get("urls") or {}).get("raw")
        if not raw_url:
            raise UpstreamUnavailableError(f"Image provider returned no download URL for {asset_id}")

        await self._download(self._sized_url(raw_url, width, height), dest_path)

        user = photo.get("user") or {}
        return FetchedAsset(
            path=dest_path,
            photographer=user.get("name"),
            photographer_url=(user.get("links") or {}).get("html"),
        )

    async def _get_photo(self, asset_id: str) -> dict:
        url = f"{self.api_base}/photos/{asset_id}"
        try:
            response = await self.client.get(url, headers=self._auth_headers())
        except httpx.HTTPError as e:
            logger.error(f"[FETCH] Metadata request failed for {asset_id}: {e}")
            raise UpstreamUnavailableError(f"Image provider unreachable: {e}") from e

        if response.status_code == 404:
            raise AssetNotFoundError(asset_id)
        if response.status_code == 429 or (
            response.status_code == 403
            and response.headers.get("X-Ratelimit-Remaining") == "0"
        ):
            logger.warning(f"[FETCH] Rate limited by image provider (status={response.status_code})")
            raise UpstreamUnavailableError(rate_limited=True)
        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                f"Image provider returned HTTP {response.status_code} for {asset_id}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailableError("Image provider returned invalid JSON") from e

    async def _track_download(self, download_location: str) -> None:
        """Required by the provider's API guidelines; failures are not fatal."""
        try:
            response = await self.client.get(download_location, headers=self._auth_headers())
            if response.status_code >= 400:
                logger.warning(f"[FETCH] Download tracking returned HTTP {response.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"[FETCH] Download tracking failed: {e}")

    @staticmethod
    def _sized_url(raw_url: str, width: int, height: int) -> str:
        params = urlencode({"w": width, "h": height, "fit": "crop", "fm": "jpg", "q": 90})
        separator = "&" if "?" in raw_url else "?"
        return f"{raw_url}{separator}{params}"

    async def _download(self, url: str, dest_path: Path) -> None:
        received = 0
        downloaded = 0
        try:
            async with self.client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise TransferFailedError(
                        f"Image download returned HTTP {response.status_code}"
                    )
                expected = response.headers.get("Content-Length")
                with open(dest_path, "wb") as f:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
                        received += len(chunk)
                downloaded = response.num_bytes_downloaded
        except httpx.HTTPError as e:
            logger.error(f"[FETCH] Image download interrupted after {received} bytes: {e}")
            raise TransferFailedError(f"Image download interrupted: {e}") from e

        if received == 0:
            raise TransferFailedError("Image download returned an empty body")
        if expected is not None and expected.isdigit() and int(expected) != downloaded:
            raise TransferFailedError(
                f"Image download truncated: {downloaded} of {expected} bytes"
            )
        logger.info(f"[FETCH] Downloaded {received} bytes to {dest_path.name}")
