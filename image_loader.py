# image_loader.py
"""
Fetch remote images (company logo, receipt photo, report photos, signatures)
and decode just enough of them to lay them out: format tag and natural size.
"""
from __future__ import annotations

import base64
import binascii
import enum
import io
import logging
from dataclasses import dataclass
from typing import Optional

import requests
from reportlab.lib.utils import ImageReader

from config import Config

logger = logging.getLogger(__name__)


class ImageLoadError(Exception):
    """Network, HTTP or decode failure while loading an image."""


@dataclass(frozen=True)
class RemoteImage:
    data: bytes
    format: str  # "JPEG" or "PNG"
    width: int
    height: int


class LoadStatus(enum.Enum):
    LOADED = "loaded"
    SKIPPED = "skipped"
    NOT_REQUESTED = "not_requested"


@dataclass(frozen=True)
class ImageLoadResult:
    status: LoadStatus
    image: Optional[RemoteImage] = None
    error: Optional[ImageLoadError] = None

    @property
    def loaded(self) -> bool:
        return self.status is LoadStatus.LOADED


def _format_for(content_type: str | None) -> str:
    return "PNG" if "png" in (content_type or "").lower() else "JPEG"


def _decode(data: bytes, fmt: str) -> RemoteImage:
    if not data:
        raise ImageLoadError("empty image payload")
    try:
        iw, ih = ImageReader(io.BytesIO(data)).getSize()
    except Exception as e:
        raise ImageLoadError(f"could not decode image: {e}") from e
    if not iw or not ih:
        raise ImageLoadError(f"image has no area ({iw}x{ih})")
    return RemoteImage(data=data, format=fmt, width=int(iw), height=int(ih))


def _load_data_url(url: str) -> RemoteImage:
    # data:image/png;base64,....
    header, sep, payload = url.partition(",")
    if not sep or ";base64" not in header:
        raise ImageLoadError("unsupported data URL (expected base64 payload)")
    mime = header[len("data:"):].split(";", 1)[0]
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageLoadError(f"bad base64 payload: {e}") from e
    return _decode(data, _format_for(mime))


def load_image(url: str, timeout: float | None = None) -> RemoteImage:
    """
    Fetch `url` and return the decoded image.

    Format comes from the declared content type: anything mentioning png is
    PNG, everything else is treated as JPEG.

    Raises ImageLoadError on any failure.
    """
    if url.startswith("data:"):
        return _load_data_url(url)

    try:
        resp = requests.get(url, timeout=timeout or Config.IMAGE_FETCH_TIMEOUT)
        resp.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise ImageLoadError(f"fetch failed for {url}: {e}") from e

    return _decode(resp.content, _format_for(resp.headers.get("Content-Type")))


def load_optional_image(url: str | None) -> ImageLoadResult:
    """Load an image that the document can live without."""
    if not url:
        return ImageLoadResult(LoadStatus.NOT_REQUESTED)
    try:
        image = load_image(url)
    except ImageLoadError as e:
        logger.warning("Skipping image %s: %s", url[:80], e)
        return ImageLoadResult(LoadStatus.SKIPPED, error=e)
    return ImageLoadResult(LoadStatus.LOADED, image=image)
