"""
Customization page controller.

One CustomizationSession per open customization page. It owns the
state struct, the ingestors, the canvas and the order emitter, and is the
error boundary: failures from any layer become user-facing notifications
and never escape as exceptions.
"""

import time
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from PIL import Image
from loguru import logger

from .canvas import CanvasPipeline, CanvasState, SurfaceFactory
from .collage import CollageAssembler
from .config import AppConfig, get_config
from .errors import CustomizerError, RenderError, StaleResultError, ValidationError
from .ingest import ImageFile, ImageIngestor, UploadedImage
from .options import FRAME, SIZE, ProductOptions, quantity_from_label
from .orders import InMemoryOrderCollaborator, OrderCollaborator, OrderIntentEmitter, OrderMode, SubmissionResult
from .steps import (
    CustomizationState, Step, back_to_design, back_to_upload, clear_uploaded_image,
    continue_to_preview, continue_to_upload, derive_price, derive_quality, initial_state,
    mark_canvas_built, select_choice, select_template, set_collage_slots, set_custom_text,
    set_detail, set_quantity, set_uploaded_image
)
from .variants import get_variant_images


@dataclass(frozen=True)
class Notification:
    level: str  # success, info, error
    message: str


class CustomizationSession:

    def __init__(self,
                 product: ProductOptions,
                 collaborator: Optional[OrderCollaborator] = None,
                 surface_factory: Optional[SurfaceFactory] = None,
                 decoder=None,
                 config: Optional[AppConfig] = None,
                 session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex
        self.config = config or get_config()

        if product.upload_kind == 'logo':
            max_bytes = self.config.LOGO_MAX_UPLOAD_SIZE
        else:
            max_bytes = self.config.MAX_UPLOAD_SIZE
        ingestor_kwargs = {'decoder': decoder} if decoder else {}

        self.ingestor = ImageIngestor(max_bytes, **ingestor_kwargs)
        self.collage = CollageAssembler(max_bytes, decoder, self.config)
        self.canvas = CanvasPipeline(surface_factory, self.config)
        self.emitter = OrderIntentEmitter(collaborator or InMemoryOrderCollaborator())
        self.state: CustomizationState = initial_state(product)
        self.notifications: List[Notification] = []

        logger.info(f"Session {self.id} opened for product {product.product_id} "
                    f"({product.design_template.id})")

    # Notifications

    def notify(self, level: str, message: str) -> None:
        self.notifications.append(Notification(level, message))

    def drain_notifications(self) -> List[Notification]:
        pending, self.notifications = self.notifications, []
        return pending

    def _fail(self, error: CustomizerError) -> None:
        logger.warning(f"Session {self.id}: {error.__class__.__name__}: {error.message}")
        self.notify('error', error.message)

    def _apply(self, transition: Callable[..., CustomizationState], *args) -> bool:
        try:
            self.state = transition(self.state, *args)
        except CustomizerError as e:
            self._fail(e)
            return False
        self._sync_canvas()
        return True

    # Canvas lifecycle

    def _sync_canvas(self) -> bool:
        """
        Keep the surface in step with the state: none on the design step or for collages.

        Returns False when a rebuild failed (already reported).
        """
        state = self.state
        if state.is_collage or state.step == Step.DESIGN:
            if self.canvas.surface is not None:
                self.canvas.dispose()
                self.state = replace(self.state, canvas_dirty=True)
            return True

        if not state.canvas_dirty:
            return True

        try:
            self.canvas.rebuild(state.template.aspect_ratio, state.uploaded_image)
        except CustomizerError as e:
            self._fail(e)
            return False
        finally:
            self.state = mark_canvas_built(self.state)
        return True

    # Options and price

    def select(self, dimension_id: str, choice_id: str) -> bool:
        return self._apply(select_choice, dimension_id, choice_id)

    def set_quantity(self, quantity: int) -> bool:
        return self._apply(set_quantity, quantity)

    def set_custom_text(self, text: Optional[str]) -> bool:
        return self._apply(set_custom_text, text)

    def set_detail(self, key: str, value: Optional[str]) -> bool:
        return self._apply(set_detail, key, value)

    # Steps

    def continue_to_upload(self) -> bool:
        return self._apply(continue_to_upload)

    def continue_to_preview(self) -> bool:
        return self._apply(continue_to_preview)

    def back_to_upload(self) -> bool:
        return self._apply(back_to_upload)

    def back_to_design(self) -> bool:
        return self._apply(back_to_design)

    def select_template(self, template_id: str) -> bool:
        was_collage = self.state.is_collage
        if not self._apply(select_template, template_id):
            return False
        if self.state.is_collage != was_collage:
            # In-flight decodes target the other data structure now
            self.ingestor.invalidate()
            self.collage.invalidate()
        return True

    # Single-photo ingestion

    async def upload(self, file: ImageFile) -> Optional[UploadedImage]:
        if self.state.is_collage:
            self._fail(ValidationError("Choose a collage slot for this photo"))
            return None

        try:
            image = await self.ingestor.ingest(file, self.state.target_inches)
        except StaleResultError:
            return None
        except CustomizerError as e:
            self._fail(e)
            return None

        self.state = set_uploaded_image(self.state, image)
        if self._sync_canvas():
            self.notify('success', "Photo uploaded successfully!")
        return image

    async def drop(self, files: List[ImageFile]) -> Optional[UploadedImage]:
        if not files:
            return None
        return await self.upload(files[0])

    def clear_image(self) -> None:
        self.ingestor.invalidate()
        self.canvas.clear()
        self.state = clear_uploaded_image(self.state)
        self._sync_canvas()

    # Collage

    async def upload_to_slot(self, index: int, file: ImageFile) -> Optional[UploadedImage]:
        if not self.state.is_collage:
            self._fail(ValidationError("This design takes a single photo"))
            return None

        try:
            image = await self.collage.upload_to_slot(index, file)
        except StaleResultError:
            return None
        except CustomizerError as e:
            self._fail(e)
            return None

        self.state = set_collage_slots(self.state, tuple(self.collage.slots))
        self.notify('success', f"Photo {index + 1} uploaded!")
        return image

    def clear_slot(self, index: int) -> bool:
        try:
            self.collage.clear_slot(index)
        except CustomizerError as e:
            self._fail(e)
            return False
        self.state = set_collage_slots(self.state, tuple(self.collage.slots))
        return True

    def clear_collage(self) -> None:
        self.collage.clear_all()
        self.state = set_collage_slots(self.state, tuple(self.collage.slots))

    # Canvas adjustments

    def zoom_in(self) -> Optional[CanvasState]:
        return self.canvas.zoom_in() if self.canvas.surface is not None else None

    def zoom_out(self) -> Optional[CanvasState]:
        return self.canvas.zoom_out() if self.canvas.surface is not None else None

    def rotate(self) -> Optional[CanvasState]:
        return self.canvas.rotate() if self.canvas.surface is not None else None

    def preview_image(self) -> Image.Image:
        """Rendered preview: the collage grid, or the canvas with its frame overlay."""
        if self.state.is_collage:
            return self.collage.compose()
        if self.canvas.surface is None:
            raise RenderError("Nothing to preview yet")
        frame = self.state.selected(FRAME)
        frame_color = None if frame is None or frame.is_none else frame.metadata.get('color')
        return self.canvas.render_preview(self.state.template.overlay_style, frame_color)

    # Derived values

    @property
    def price(self):
        return derive_price(self.state)

    @property
    def quality(self):
        return derive_quality(self.state)

    def gallery_images(self) -> List[str]:
        product = self.state.product
        return get_variant_images(product.variant_images, list(product.images), {
            'size': self.state.selections.get(SIZE),
            'frame': self.state.selections.get(FRAME),
        })

    # Submission

    async def submit(self, mode: str) -> SubmissionResult:
        try:
            order_mode = OrderMode(mode)
        except ValueError:
            self._fail(ValidationError(f"Unknown order mode: {mode}"))
            return SubmissionResult(False, f"Unknown order mode: {mode}")

        try:
            collage_file = None
            if self.state.is_collage and self.state.has_at_least_one_image:
                collage_file = self.collage.composite_file()
            result = await self.emitter.submit(self.state, order_mode, collage_file)
        except CustomizerError as e:
            self._fail(e)
            return SubmissionResult(False, e.message)

        self.notify('success', result.message)
        return result

    def close(self) -> None:
        self.canvas.dispose()
        logger.info(f"Session {self.id} closed")

    def snapshot(self) -> Dict[str, Any]:
        state = self.state
        product = state.product
        price = self.price
        quality = self.quality

        dimensions = []
        for dim in product.dimensions:
            dimensions.append({
                'id': dim.id,
                'label': dim.label,
                'selected': state.selections.get(dim.id),
                'choices': [
                    {
                        'id': choice.id,
                        'label': choice.label,
                        'price_delta': choice.price_delta,
                        'is_popular': choice.is_popular,
                        'is_none': choice.is_none,
                    }
                    for choice in dim.choices
                ],
            })

        snapshot = {
            'id': self.id,
            'product': {
                'id': product.product_id,
                'name': product.name,
                'category': product.category,
                'base_price': product.base_price,
                'requires_text': product.requires_text,
                'upload_kind': product.upload_kind,
            },
            'step': state.step.value,
            'template': {
                'id': state.template.id,
                'label': state.template.label,
                'aspect_ratio': state.template.aspect_ratio,
                'overlay_style': state.template.overlay_style,
            },
            'dimensions': dimensions,
            'quantity': state.quantity,
            'custom_text': state.custom_text,
            'details': dict(state.details),
            'price': price.to_dict(),
            'image': state.uploaded_image.to_dict() if state.uploaded_image else None,
            'quality': quality.value if quality else None,
            'collage': [slot.to_dict() if slot else None for slot in state.collage_slots],
            'canvas': self.canvas.state.to_dict() if self.canvas.state else None,
            'gallery': self.gallery_images(),
        }

        if product.quantity_from_size:
            size = state.selected(SIZE)
            pieces = max(quantity_from_label(size.label if size else ""), 1)
            snapshot['pieces'] = pieces
            snapshot['per_piece_price'] = round(price.unit_price / pieces, 2)

        return snapshot


class SessionRegistry:
    """
    Open customization sessions by id.

    Sessions idle for longer than idle_timeout seconds are closed on the
    next registry access. When max_sessions are open, creating another
    closes the least recently used one.
    """

    def __init__(self, idle_timeout: float = 1800, max_sessions: int = 500,
                 clock: Callable[[], float] = time.monotonic):
        self.idle_timeout = idle_timeout
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: Dict[str, CustomizationSession] = {}
        self._last_used: Dict[str, float] = {}

    def _expire_idle(self) -> None:
        cutoff = self._clock() - self.idle_timeout
        for session_id, last_used in list(self._last_used.items()):
            if last_used < cutoff:
                logger.info(f"Session {session_id} expired after {self.idle_timeout}s idle")
                self.remove(session_id)

    def create(self, product: ProductOptions, **kwargs) -> CustomizationSession:
        self._expire_idle()
        while self._sessions and len(self._sessions) >= self.max_sessions:
            oldest = min(self._last_used, key=self._last_used.get)
            logger.warning(f"Session limit {self.max_sessions} reached, closing {oldest}")
            self.remove(oldest)

        session = CustomizationSession(product, **kwargs)
        self._sessions[session.id] = session
        self._last_used[session.id] = self._clock()
        return session

    def get(self, session_id: str) -> Optional[CustomizationSession]:
        self._expire_idle()
        session = self._sessions.get(session_id)
        if session is not None:
            self._last_used[session_id] = self._clock()
        return session

    def remove(self, session_id: str) -> None:
        self._last_used.pop(session_id, None)
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def __len__(self) -> int:
        return len(self._sessions)
