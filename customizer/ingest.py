"""
Image ingestion for the Print Customizer.

This module handles:
- Validating user-supplied files (MIME type, size limit)
- Decoding pixel dimensions without blocking the event loop
- Rating print quality from an estimated DPI at the target print size
- Last-write-wins ordering between overlapping ingest requests
"""

import asyncio
import base64
import io
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from loguru import logger

from .errors import CustomizerError, DecodeError, FileTooLargeError, InvalidImageFormatError, StaleResultError


MB = 1024 * 1024


class QualityRating(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    LOW = "Low"


@dataclass(frozen=True)
class ImageFile:
    """Opaque handle to a user-supplied file. The bytes are never re-encoded."""
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        suffix = Path(self.filename).suffix.lstrip('.').lower()
        if suffix:
            return suffix
        return (self.content_type.split('/')[-1] or 'png').lower()

    @classmethod
    def from_path(cls, path) -> "ImageFile":
        path = Path(path)
        content_type = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'
        return cls(path.name, content_type, path.read_bytes())

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode('ascii')
        return f"data:{self.content_type};base64,{encoded}"

    def open(self) -> Image.Image:
        return Image.open(io.BytesIO(self.data))


@dataclass(frozen=True)
class UploadedImage:
    """One ingested photograph with its decoded dimensions."""
    source_file: ImageFile
    pixel_width: int
    pixel_height: int
    quality_rating: Optional[QualityRating] = None

    @property
    def size_bytes(self) -> int:
        return self.source_file.size_bytes

    @property
    def preview_data_uri(self) -> str:
        return self.source_file.to_data_uri()

    def quality_for(self, target_inches: Optional[Tuple[float, float]]) -> Optional[QualityRating]:
        if not target_inches:
            return None
        return rate_quality(estimate_dpi(self.pixel_width, self.pixel_height, target_inches))

    def to_dict(self):
        return {
            'filename': self.source_file.filename,
            'content_type': self.source_file.content_type,
            'width': self.pixel_width,
            'height': self.pixel_height,
            'size': format_file_size(self.size_bytes),
            'quality': self.quality_rating.value if self.quality_rating else None,
        }


Decoder = Callable[[ImageFile], Awaitable[Tuple[int, int]]]


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < MB:
        return f"{size / 1024:.1f} KB"
    return f"{size / MB:.1f} MB"


def validate_image_file(file: ImageFile, max_bytes: int) -> None:
    """Reject non-image MIME types and oversized files."""
    if not (file.content_type or '').startswith('image/'):
        raise InvalidImageFormatError(file.filename, file.content_type)

    if file.size_bytes > max_bytes:
        raise FileTooLargeError(
            filename=file.filename,
            size_mb=file.size_bytes / MB,
            limit_mb=max_bytes / MB
        )


def estimate_dpi(pixel_width: int, pixel_height: int, target_inches: Tuple[float, float]) -> float:
    width_in, height_in = target_inches
    return min(pixel_width / width_in, pixel_height / height_in)


def rate_quality(dpi: float) -> QualityRating:
    if dpi >= 300:
        return QualityRating.EXCELLENT
    if dpi >= 150:
        return QualityRating.GOOD
    if dpi >= 72:
        return QualityRating.FAIR
    return QualityRating.LOW


def read_dimensions(data: bytes) -> Tuple[int, int]:
    """Read pixel dimensions from the image header."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise DecodeError("Failed to load image", details={'error': str(e)})


async def decode_dimensions(file: ImageFile) -> Tuple[int, int]:
    return await asyncio.to_thread(read_dimensions, file.data)


class ImageIngestor:
    """
    Validates and decodes uploads for one target (the single photo, or
    one collage slot).

    Every ingest takes a new token; when a decode finishes after a newer
    request was issued its result is discarded with StaleResultError.
    """

    def __init__(self, max_bytes: int = 10 * MB, decoder: Decoder = decode_dimensions):
        self.max_bytes = max_bytes
        self._decoder = decoder
        self._token = 0

    @property
    def latest_token(self) -> int:
        return self._token

    def invalidate(self) -> None:
        """Drop whatever is in flight."""
        self._token += 1

    async def ingest(self, file: ImageFile,
                     target_inches: Optional[Tuple[float, float]] = None) -> UploadedImage:
        validate_image_file(file, self.max_bytes)

        self._token += 1
        token = self._token
        logger.debug(f"Decoding {file.filename} ({format_file_size(file.size_bytes)}), token {token}")

        try:
            width, height = await self._decoder(file)
        except CustomizerError:
            if token != self._token:
                logger.debug(f"Dropping failed decode of {file.filename}: token {token} superseded")
                raise StaleResultError(token, self._token)
            raise

        if token != self._token:
            logger.debug(f"Discarding decode of {file.filename}: token {token} superseded by {self._token}")
            raise StaleResultError(token, self._token)

        quality = None
        if target_inches:
            quality = rate_quality(estimate_dpi(width, height, target_inches))
        image = UploadedImage(source_file=file, pixel_width=width, pixel_height=height,
                              quality_rating=quality)
        logger.info(f"Ingested {file.filename}: {width}x{height}, quality {image.quality_rating}")
        return image
