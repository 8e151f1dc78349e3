"""
Cover image processing and storage.

Uploaded covers are cropped to the catalogue's cover size, re-encoded as
WebP and written to the upload directory. Books reference them by a
relative URL under the public upload prefix.
"""

import secrets
import time
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple

import structlog
from PIL import Image, ImageOps, UnidentifiedImageError

from catalog.exceptions import InvalidImageError

logger = structlog.get_logger(__name__)


class ImageStore:
    """Processes uploaded covers and manages the files on disk."""

    def __init__(
        self,
        upload_dir: Path,
        url_prefix: str = "/uploads",
        size: Tuple[int, int] = (206, 260),
        quality: int = 80,
    ):
        self.upload_dir = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self.size = size
        self.quality = quality

    def ensure_directory(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def process(self, data: bytes) -> bytes:
        """
        Crop and resize an image to the cover size and encode it as WebP.

        Raises:
            InvalidImageError: if the bytes are not a decodable image
        """
        try:
            with Image.open(BytesIO(data)) as image:
                image = ImageOps.exif_transpose(image)
                if image.mode not in ("RGB", "RGBA"):
                    image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
                cover = ImageOps.fit(image, self.size, method=Image.Resampling.LANCZOS)
                output = BytesIO()
                cover.save(output, format="WEBP", quality=self.quality)
                return output.getvalue()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise InvalidImageError(detail=str(e))

    def save(self, data: bytes, content_type: Optional[str] = None) -> str:
        """
        Process and store an uploaded cover.

        Args:
            data: Raw uploaded bytes
            content_type: MIME type announced by the client

        Returns:
            Public URL of the stored cover
        """
        if not content_type or not content_type.startswith("image/"):
            raise InvalidImageError(detail=f"unsupported content type: {content_type}")
        if not data:
            raise InvalidImageError(detail="empty file")

        encoded = self.process(data)

        self.ensure_directory()
        filename = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.webp"
        (self.upload_dir / filename).write_bytes(encoded)

        logger.info("Cover image stored", filename=filename, size_bytes=len(encoded))
        return f"{self.url_prefix}/{filename}"

    def path_for(self, image_url: Optional[str]) -> Optional[Path]:
        """Map a public cover URL back to a file, or None if it is not ours."""
        if not image_url or not image_url.startswith(self.url_prefix + "/"):
            return None
        filename = image_url[len(self.url_prefix) + 1:]
        if not filename or "/" in filename or "\\" in filename or filename in (".", ".."):
            return None
        return self.upload_dir / filename

    def delete(self, image_url: Optional[str]) -> bool:
        """
        Remove a stored cover. URLs outside the upload prefix are ignored.

        Returns:
            True if a file was removed
        """
        path = self.path_for(image_url)
        if path is None:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Failed to delete cover image", path=str(path), error=str(e))
            return False
        logger.info("Cover image deleted", path=str(path))
        return True
