import io
import logging
import os

import httpx
from PIL import Image, UnidentifiedImageError

from textbehind.errors import SegmentationFailure
from textbehind.models.segmentation.base import BaseSegmenter

logger = logging.getLogger(__name__)

REMOVE_BG_URL = "https://api.remove.bg/v1.0/removebg"
API_KEY_ENV = "REMOVE_BG_API_KEY"


class RemoveBgSegmenter(BaseSegmenter):
    """Foreground extraction through the remove.bg HTTP API.

    Args:
        api_key: remove.bg API key. Falls back to the ``REMOVE_BG_API_KEY`` environment variable.
        url: Endpoint to post images to.
        size: Output size requested from the service ("auto", "preview", "full", ...).
        timeout: Per-request timeout in seconds.
        client: Client to send requests with. When given, the caller owns it and
            ``aclose`` leaves it open.
    """

    def __init__(
        self,
        api_key: str | None = None,
        url: str = REMOVE_BG_URL,
        size: str = "auto",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or os.environ.get(API_KEY_ENV)
        if not self.api_key:
            raise ValueError(f"remove.bg API key is not set. Pass api_key or set {API_KEY_ENV}")
        self.url = url
        self.size = size
        self._owns_client = client is None
        self.client = client if client is not None else httpx.AsyncClient(timeout=timeout)

    async def segment(self, image: Image.Image) -> Image.Image:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        try:
            response = await self.client.post(
                self.url,
                headers={"X-Api-Key": self.api_key},
                files={"image_file": ("image.png", buffer.getvalue(), "image/png")},
                data={"size": self.size},
            )
        except httpx.TimeoutException as e:
            raise SegmentationFailure(f"remove.bg request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise SegmentationFailure(f"remove.bg request failed: {e}") from e

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            raise SegmentationFailure("remove.bg rate limit exceeded", rate_limited=True, retry_after=retry_after)
        if response.is_error:
            raise SegmentationFailure(f"remove.bg returned HTTP {response.status_code}: {_error_detail(response)}")

        try:
            cutout = Image.open(io.BytesIO(response.content))
            cutout.load()
        except (UnidentifiedImageError, OSError) as e:
            raise SegmentationFailure(f"remove.bg returned an undecodable image: {e}") from e
        cutout = cutout.convert("RGBA")

        if cutout.size != image.size:
            logger.warning(f"Cutout size {cutout.size} differs from input size {image.size}, resampling")
            cutout = cutout.resize(image.size, Image.Resampling.LANCZOS)
        return cutout

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def _parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_detail(response: httpx.Response) -> str:
    """First error title from a remove.bg error body, or the raw body text."""
    try:
        errors = response.json().get("errors") or []
        if errors:
            return str(errors[0].get("title", errors[0]))
    except (ValueError, AttributeError):
        pass
    return response.text[:200]
