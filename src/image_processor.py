"""
Image processing for display payloads.
Turns local files or downloaded photos into base64 data URLs, optionally
resizing them to fit the screen.
"""

import base64
import io
import logging
import os
from typing import TYPE_CHECKING, Optional, Protocol

from PIL import Image, ImageOps

from .config import ImageConfig

if TYPE_CHECKING:
    from .cache_manager import ImageCache


class PhotoDownloader(Protocol):
    def download_photo(self, photo_url: str) -> Optional[bytes]:
        ...


def to_data_url(data: bytes, image_type: str) -> str:
    """Wrap raw bytes in a data URL."""
    return f"data:image/{image_type};base64,{base64.b64encode(data).decode('ascii')}"


class ImageProcessor:
    """
    Produces the payload sent to the display for one photo.

    Three paths, picked in this order:
    - Remote: a URL and a client are given; the cache is checked first,
      then the photo is downloaded and the result cached
    - Resize: the local file is re-encoded as JPEG within max_width x max_height
    - Raw: the local file is sent as is, typed by its extension

    Every path returns None on failure instead of raising.
    """

    def __init__(
        self,
        config: ImageConfig,
        cache: Optional["ImageCache"] = None,
        cache_enabled: bool = True,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            config: Resize settings.
            cache: Image cache used on the remote path.
            cache_enabled: Whether the cache may be read and written.
            logger: Logger to report through.
        """
        self.config = config
        self.cache = cache
        self.cache_enabled = cache_enabled
        self._log = logger or logging.getLogger(__name__)

    def render(
        self,
        source_path: str,
        url: Optional[str] = None,
        client: Optional[PhotoDownloader] = None
    ) -> Optional[str]:
        """
        Build the display payload for a photo.

        Args:
            source_path: Local file path (ignored on the remote path).
            url: Remote download URL.
            client: Object with download_photo(url).

        Returns:
            Data URL string, or None on failure.
        """
        if url and client is not None:
            return self.download_remote(url, client)

        if self.config.resize:
            return self.resize_image(source_path)

        self._log.debug("Reading image without resizing")
        return self.read_file_raw(source_path)

    def _cache_active(self) -> bool:
        return self.cache is not None and self.cache_enabled

    def download_remote(self, url: str, client: PhotoDownloader) -> Optional[str]:
        """Serve a remote photo from cache, or download and cache it."""
        try:
            if self._cache_active():
                cached = self.cache.get(url)
                if cached:
                    self._log.info("Serving image from cache")
                    return cached

            data_url = self.fetch_remote(url, client)
            if data_url is None:
                return None

            if self._cache_active():
                self.cache.set(url, data_url)

            return data_url
        except Exception as e:
            self._log.error(f"Error downloading Synology image: {e}")
            return None

    def fetch_remote(self, url: str, client: PhotoDownloader) -> Optional[str]:
        """
        Download a remote photo and encode it, bypassing the cache.

        Used by the preloader, which writes the cache itself.
        """
        self._log.info("Downloading Synology image...")
        image_bytes = client.download_photo(url)
        if not image_bytes:
            self._log.error("Failed to download Synology image")
            return None

        self._log.info(f"Downloaded Synology image: {len(image_bytes)} bytes")
        return to_data_url(image_bytes, "jpeg")

    def resize_image(self, image_path: str) -> Optional[str]:
        """
        Re-encode a local image to fit within the configured bounds.

        Applies EXIF orientation first. Output is always progressive JPEG.
        """
        max_width = int(self.config.max_width)
        max_height = int(self.config.max_height)
        self._log.info(f"Resizing image to max: {max_width}x{max_height}")

        try:
            with Image.open(image_path) as img:
                img = ImageOps.exif_transpose(img)

                # JPEG has no alpha or palette
                if img.mode != "RGB":
                    img = img.convert("RGB")

                img.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)

                buffer = io.BytesIO()
                img.save(
                    buffer,
                    "JPEG",
                    quality=self.config.quality,
                    progressive=True,
                    optimize=True
                )
        except Exception as e:
            self._log.error(f"Error resizing image: {e}")
            return None

        self._log.debug("Resizing complete")
        return to_data_url(buffer.getvalue(), "jpg")

    def read_file_raw(self, file_path: str) -> Optional[str]:
        """Read a local file and wrap it unchanged, typed by extension."""
        ext = os.path.splitext(file_path)[1].lstrip(".") or "jpeg"

        try:
            with open(file_path, 'rb') as f:
                data = f.read()
        except OSError as e:
            self._log.error(f"Error reading file: {e}")
            return None

        self._log.debug("File read complete")
        return to_data_url(data, ext)
