"""
Canvas render pipeline for the Print Customizer.

This module handles:
- Sizing the drawing surface from the design template's aspect ratio
- Cover-fit placement so the photo always fills the frame
- Zoom / rotate adjustments on the placed photo
- Rebuilding the surface whenever its sizing parameters change
- Frame overlays for the final preview

Rendering goes through a minimal DrawingSurface interface so the
placement math can be exercised without a raster backend.
"""

from dataclasses import dataclass, replace
from typing import Callable, Optional, Protocol, Tuple

from PIL import Image, ImageDraw, ImageOps, UnidentifiedImageError
from loguru import logger

from .config import AppConfig, get_config
from .errors import DecodeError, RenderError
from .ingest import UploadedImage


@dataclass(frozen=True)
class CanvasState:
    """Transient render parameters for the photo on the current surface."""
    frame_width: int
    frame_height: int
    aspect_ratio: float
    scale: float = 1.0
    cover_scale: float = 1.0
    rotation_degrees: int = 0
    image_width: int = 0
    image_height: int = 0

    @property
    def display_rotation(self) -> int:
        return self.rotation_degrees % 360

    @property
    def has_image(self) -> bool:
        return self.image_width > 0 and self.image_height > 0

    @property
    def rendered_size(self) -> Tuple[int, int]:
        return (round(self.image_width * self.scale), round(self.image_height * self.scale))

    def to_dict(self):
        return {
            'frame_width': self.frame_width,
            'frame_height': self.frame_height,
            'aspect_ratio': self.aspect_ratio,
            'scale': self.scale,
            'cover_scale': self.cover_scale,
            'rotation': self.rotation_degrees,
            'display_rotation': self.display_rotation,
        }


class DrawingSurface(Protocol):
    width: int
    height: int

    def draw_image_covering(self, image: Image.Image, state: CanvasState) -> None: ...

    def clear(self) -> None: ...

    def dispose(self) -> None: ...

    def snapshot(self) -> Image.Image: ...


SurfaceFactory = Callable[[int, int], DrawingSurface]


class PillowSurface:
    """Raster drawing surface backed by a Pillow image."""

    def __init__(self, width: int, height: int, background: str = "#f5f5f5"):
        self.width = width
        self.height = height
        self.background = background
        self.canvas: Optional[Image.Image] = Image.new('RGB', (width, height), background)
        self.disposed = False

    def _require_live(self) -> Image.Image:
        if self.disposed or self.canvas is None:
            raise RenderError("Drawing surface has been disposed")
        return self.canvas

    def draw_image_covering(self, image: Image.Image, state: CanvasState) -> None:
        self._require_live()
        canvas = Image.new('RGB', (self.width, self.height), self.background)

        placed = image
        if state.display_rotation:
            # PIL rotates counter-clockwise
            placed = placed.rotate(-state.display_rotation, expand=True)

        new_width = max(1, round(placed.width * state.scale))
        new_height = max(1, round(placed.height * state.scale))
        placed = placed.resize((new_width, new_height), Image.Resampling.LANCZOS)

        # Centered on both axes; overflow is cropped by the paste
        x = (self.width - new_width) // 2
        y = (self.height - new_height) // 2
        if placed.mode == 'RGBA':
            canvas.paste(placed, (x, y), placed)
        else:
            canvas.paste(placed.convert('RGB'), (x, y))

        self.canvas = canvas
        logger.debug(f"Drew {image.size} at scale {state.scale:.4f}, "
                     f"rotation {state.display_rotation} -> {new_width}x{new_height} @ ({x}, {y})")

    def clear(self) -> None:
        self._require_live()
        self.canvas = Image.new('RGB', (self.width, self.height), self.background)

    def dispose(self) -> None:
        self.canvas = None
        self.disposed = True

    def snapshot(self) -> Image.Image:
        return self._require_live().copy()


def cover_fit_scale(frame_width: float, frame_height: float,
                    image_width: float, image_height: float,
                    buffer: float = 1.02) -> float:
    """
    Smallest scale at which the image covers the frame, times a small
    buffer so rounding never leaves a visible gap at the edges.
    """
    if image_width <= 0 or image_height <= 0:
        raise RenderError(f"Invalid image dimensions: {image_width}x{image_height}")
    scale_x = frame_width / image_width
    scale_y = frame_height / image_height
    return max(scale_x, scale_y) * buffer


def frame_size_for(aspect_ratio: float, container_width: int, max_width: int = 500) -> Tuple[int, int]:
    """Surface size for a template: width capped at max_width, height from the ratio."""
    if aspect_ratio <= 0:
        raise RenderError(f"Invalid aspect ratio: {aspect_ratio}")
    width = min(container_width, max_width)
    return width, round(width / aspect_ratio)


def apply_overlay(image: Image.Image,
                  overlay_style: Optional[str] = None,
                  frame_color: Optional[str] = None,
                  border_px: int = 12) -> Image.Image:
    """Frame treatment for the preview: a coloured border and/or the dual border."""
    result = image.convert('RGB')

    if overlay_style == 'dual-border-frame':
        draw = ImageDraw.Draw(result)
        inset = max(2, min(result.size) // 20)
        draw.rectangle([inset, inset, result.width - inset - 1, result.height - inset - 1],
                       outline='white', width=max(2, inset // 3))
        inner = inset * 2
        draw.rectangle([inner, inner, result.width - inner - 1, result.height - inner - 1],
                       outline='white', width=1)

    if frame_color:
        # Frame sits outside the photo; the photo keeps its exact size
        result = ImageOps.expand(result, border=border_px, fill=frame_color)

    return result


class CanvasPipeline:
    """Owns the drawing surface and the CanvasState of one customization page."""

    def __init__(self, surface_factory: Optional[SurfaceFactory] = None, config: Optional[AppConfig] = None):
        self.config = config or get_config()
        self.surface_factory = surface_factory or (
            lambda w, h: PillowSurface(w, h, self.config.CANVAS_BACKGROUND)
        )
        self.surface: Optional[DrawingSurface] = None
        self.state: Optional[CanvasState] = None
        self._image: Optional[Image.Image] = None

    def build(self, aspect_ratio: float, container_width: Optional[int] = None) -> CanvasState:
        """Dispose any existing surface and create a new one for the aspect ratio."""
        self.dispose()
        width, height = frame_size_for(
            aspect_ratio,
            container_width or self.config.CANVAS_MAX_WIDTH,
            self.config.CANVAS_MAX_WIDTH
        )
        self.surface = self.surface_factory(width, height)
        self.state = CanvasState(frame_width=width, frame_height=height, aspect_ratio=aspect_ratio)
        logger.debug(f"Built {width}x{height} surface for aspect ratio {aspect_ratio:.4f}")
        return self.state

    def _require_surface(self) -> DrawingSurface:
        if self.surface is None or self.state is None:
            raise RenderError("Canvas has not been built")
        return self.surface

    def render_image_to_frame(self, uploaded: UploadedImage) -> CanvasState:
        """Place the photo centred at cover-fit scale. Decode failures leave the frame empty."""
        surface = self._require_surface()

        try:
            image = uploaded.source_file.open()
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            self._image = None
            surface.clear()
            self.state = CanvasState(self.state.frame_width, self.state.frame_height, self.state.aspect_ratio)
            logger.error(f"Failed to decode {uploaded.source_file.filename} for the canvas: {e}")
            raise DecodeError(
                "Failed to load image",
                details={'filename': uploaded.source_file.filename}
            )

        scale = cover_fit_scale(
            self.state.frame_width, self.state.frame_height,
            image.width, image.height,
            self.config.COVER_FIT_BUFFER
        )
        self._image = image
        self.state = replace(
            self.state,
            scale=scale,
            cover_scale=scale,
            rotation_degrees=0,
            image_width=image.width,
            image_height=image.height,
        )
        surface.draw_image_covering(image, self.state)
        logger.debug(f"Cover-fit {image.size} into {self.state.frame_width}x{self.state.frame_height}: "
                     f"scale {scale:.4f}")
        return self.state

    def _redraw(self) -> CanvasState:
        self._require_surface().draw_image_covering(self._image, self.state)
        return self.state

    def zoom_in(self) -> Optional[CanvasState]:
        if self._image is None:
            return self.state
        self.state = replace(self.state, scale=self.state.scale * self.config.ZOOM_IN_STEP)
        return self._redraw()

    def zoom_out(self) -> Optional[CanvasState]:
        if self._image is None:
            return self.state
        scale = self.state.scale * self.config.ZOOM_OUT_STEP
        if self.config.CLAMP_ZOOM_TO_COVER:
            scale = max(scale, self.state.cover_scale)
        self.state = replace(self.state, scale=scale)
        return self._redraw()

    def rotate(self) -> Optional[CanvasState]:
        """Rotate 90 degrees clockwise; stored as a running total."""
        if self._image is None:
            return self.state
        self.state = replace(self.state, rotation_degrees=self.state.rotation_degrees + 90)
        return self._redraw()

    def rebuild(self, aspect_ratio: float,
                uploaded: Optional[UploadedImage] = None,
                container_width: Optional[int] = None) -> CanvasState:
        """New surface for new dimensions, re-placing the held photo at cover-fit."""
        self.build(aspect_ratio, container_width)
        if uploaded is not None:
            return self.render_image_to_frame(uploaded)
        return self.state

    def clear(self) -> None:
        self._image = None
        if self.surface is not None and self.state is not None:
            self.surface.clear()
            self.state = CanvasState(self.state.frame_width, self.state.frame_height, self.state.aspect_ratio)

    def dispose(self) -> None:
        if self.surface is not None:
            self.surface.dispose()
        self.surface = None
        self.state = None
        self._image = None

    def render_preview(self, overlay_style: Optional[str] = None,
                       frame_color: Optional[str] = None) -> Image.Image:
        image = self._require_surface().snapshot()
        return apply_overlay(image, overlay_style, frame_color, self.config.FRAME_BORDER_PX)
