"""
Collage assembler: four independent photo slots rendered into a 2x2 grid.
"""

import io
from typing import List, Optional

from PIL import Image, ImageDraw, ImageOps, UnidentifiedImageError
from loguru import logger

from .config import AppConfig, get_config
from .errors import DecodeError, ValidationError
from .ingest import ImageFile, ImageIngestor, UploadedImage


SLOT_COUNT = 4
GRID = (2, 2)


class CollageAssembler:
    """
    Holds CollageSlot[4]. Each slot has its own ingestor so uploads to
    different slots never supersede each other, while a re-upload to the
    same slot is last-write-wins.
    """

    def __init__(self, max_bytes: Optional[int] = None, decoder=None, config: Optional[AppConfig] = None):
        self.config = config or get_config()
        max_bytes = max_bytes or self.config.MAX_UPLOAD_SIZE
        kwargs = {'decoder': decoder} if decoder else {}
        self._ingestors = [ImageIngestor(max_bytes, **kwargs) for _ in range(SLOT_COUNT)]
        self.slots: List[Optional[UploadedImage]] = [None] * SLOT_COUNT

    @staticmethod
    def _check_index(index: int) -> None:
        if not isinstance(index, int) or not 0 <= index < SLOT_COUNT:
            raise ValidationError(
                f"Collage slot must be between 1 and {SLOT_COUNT}",
                details={'slot': index}
            )

    async def upload_to_slot(self, index: int, file: ImageFile) -> UploadedImage:
        self._check_index(index)
        image = await self._ingestors[index].ingest(file)
        self.slots[index] = image
        logger.info(f"Collage slot {index + 1} filled with {file.filename}")
        return image

    def set_slot(self, index: int, image: Optional[UploadedImage]) -> None:
        self._check_index(index)
        self.slots[index] = image

    def clear_slot(self, index: int) -> None:
        self._check_index(index)
        self._ingestors[index].invalidate()
        self.slots[index] = None

    def clear_all(self) -> None:
        for index in range(SLOT_COUNT):
            self.clear_slot(index)

    def invalidate(self) -> None:
        """Drop in-flight uploads for every slot without touching filled slots."""
        for ingestor in self._ingestors:
            ingestor.invalidate()

    @property
    def has_at_least_one_image(self) -> bool:
        return any(slot is not None for slot in self.slots)

    @property
    def filled_count(self) -> int:
        return sum(1 for slot in self.slots if slot is not None)

    def _tile(self, image: UploadedImage, size: int) -> Image.Image:
        try:
            with image.source_file.open() as src:
                # Cover-fit and centre-crop into the square cell
                return ImageOps.fit(src.convert('RGB'), (size, size), Image.Resampling.LANCZOS)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise DecodeError(
                f"Failed to load collage photo: {image.source_file.filename}",
                details={'filename': image.source_file.filename, 'error': str(e)}
            )

    def _placeholder(self, size: int, index: int) -> Image.Image:
        tile = Image.new('RGB', (size, size), self.config.COLLAGE_PLACEHOLDER_COLOR)
        draw = ImageDraw.Draw(tile)
        label = f"Photo {index + 1}"
        left, top, right, bottom = draw.textbbox((0, 0), label)
        draw.text(((size - (right - left)) // 2, (size - (bottom - top)) // 2), label, fill="#9ca3af")
        return tile

    def compose(self, tile_size: Optional[int] = None) -> Image.Image:
        """Render all four slots, empty ones as placeholders, into one raster."""
        tile_size = tile_size or self.config.COLLAGE_TILE_SIZE
        gap = self.config.COLLAGE_GAP_PX
        cols, rows = GRID
        canvas = Image.new(
            'RGB',
            (cols * tile_size + (cols + 1) * gap, rows * tile_size + (rows + 1) * gap),
            'white'
        )

        for index, slot in enumerate(self.slots):
            col, row = index % cols, index // cols
            position = (gap + col * (tile_size + gap), gap + row * (tile_size + gap))
            tile = self._tile(slot, tile_size) if slot is not None else self._placeholder(tile_size, index)
            canvas.paste(tile, position)

        logger.debug(f"Composed collage {canvas.size} with {self.filled_count}/{SLOT_COUNT} photos")
        return canvas

    def composite_file(self, tile_size: Optional[int] = None) -> ImageFile:
        """The collage encoded as a JPEG handle for order submission."""
        buffer = io.BytesIO()
        self.compose(tile_size).save(buffer, format='JPEG', quality=self.config.JPEG_QUALITY, optimize=True)
        return ImageFile('collage.jpg', 'image/jpeg', buffer.getvalue())

    def to_list(self) -> List[Optional[dict]]:
        return [slot.to_dict() if slot else None for slot in self.slots]
