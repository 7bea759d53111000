"""
Order intent emitter.

Packages the final selections into an OrderIntent and hands it, once, to
the external cart / buy-now collaborator. No retries: on failure the
collaborator's message is surfaced as-is and the customization state is
left untouched so the user can simply submit again.
"""

import random
import string
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import MissingCustomTextError, MissingImageError, SubmissionError
from .ingest import ImageFile
from .options import FRAME, SIZE, THICKNESS, slugify
from .steps import CustomizationState, compose_custom_text, derive_price


class OrderMode(str, Enum):
    CART = "cart"
    BUY_NOW = "buyNow"


class OrderIntent(BaseModel):
    """Outbound payload for the cart / buy-now collaborator."""
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    mode: OrderMode
    product_id: str
    product_name: str
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    selected_size: Optional[str] = None
    selected_frame: Optional[str] = None
    selections: Dict[str, str] = {}
    custom_text: Optional[str] = None
    custom_image: Optional[ImageFile] = None
    category: Optional[str] = None

    @property
    def total(self) -> int:
        return self.unit_price * self.quantity

    def to_payload(self) -> Dict:
        payload = self.model_dump(by_alias=True, exclude={'custom_image'}, mode='json')
        payload['customImage'] = self.custom_image.filename if self.custom_image else None
        return payload


class OrderCollaborator(Protocol):
    async def add_to_cart(self, intent: OrderIntent) -> None: ...

    async def buy_now(self, intent: OrderIntent) -> None: ...


@dataclass
class SubmissionResult:
    success: bool
    message: str
    intent: Optional[OrderIntent] = None


def frame_label(state: CustomizationState) -> Optional[str]:
    """Frame label, with the thickness appended for acrylic products."""
    frame = state.selected(FRAME)
    thickness = state.selected(THICKNESS)
    if state.product.is_acrylic and thickness is not None:
        return f"{frame.label if frame else 'No Frame'} | Thickness: {thickness.label}"
    return frame.label if frame else None


def build_order_intent(state: CustomizationState, mode: OrderMode,
                       collage_image: Optional[ImageFile] = None) -> OrderIntent:
    if not state.has_required_image:
        raise MissingImageError(state.template.id)

    custom_text = compose_custom_text(state)
    if state.product.requires_text and not custom_text:
        raise MissingCustomTextError()

    if state.is_collage:
        if collage_image is None:
            raise MissingImageError(state.template.id)
        image = collage_image
    else:
        image = state.uploaded_image.source_file

    price = derive_price(state)
    size = state.selected(SIZE)
    selections = {
        dim.label: dim.get(state.selections[dim.id]).label
        for dim in state.product.dimensions
    }

    return OrderIntent(
        mode=mode,
        product_id=state.product.product_id,
        product_name=state.product.name,
        quantity=state.quantity,
        unit_price=price.unit_price,
        selected_size=size.label if size else None,
        selected_frame=frame_label(state),
        selections=selections,
        custom_text=custom_text or None,
        custom_image=image,
        category=state.product.category,
    )


def storage_path_for(file: ImageFile, category: Optional[str]) -> str:
    """customize-images/<category>/<timestamp>-<random>.<ext>"""
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return (f"customize-images/{slugify(category or 'custom')}/"
            f"{int(time.time() * 1000)}-{suffix}.{file.extension}")


class InMemoryOrderCollaborator:
    """
    Reference collaborator: keeps cart lines and the pending buy-now item
    in memory and files each raw upload under a storage path.
    """

    def __init__(self):
        self.cart: List[Dict] = []
        self.buy_now_item: Optional[Dict] = None
        self.stored_files: Dict[str, ImageFile] = {}

    def _record(self, intent: OrderIntent, prefix: str) -> Dict:
        record = intent.to_payload()
        record['id'] = f"{prefix}_{int(time.time() * 1000)}"
        if intent.custom_image is not None:
            path = storage_path_for(intent.custom_image, intent.category)
            self.stored_files[path] = intent.custom_image
            record['customImage'] = path
        return record

    async def add_to_cart(self, intent: OrderIntent) -> None:
        self.cart.append(self._record(intent, 'cart'))

    async def buy_now(self, intent: OrderIntent) -> None:
        self.buy_now_item = self._record(intent, 'buynow')


class OrderIntentEmitter:

    def __init__(self, collaborator: OrderCollaborator):
        self.collaborator = collaborator

    async def submit(self, state: CustomizationState, mode: OrderMode,
                     collage_image: Optional[ImageFile] = None) -> SubmissionResult:
        """
        Build the intent and deliver it with a single attempt.

        Precondition failures raise ValidationError subclasses; collaborator
        failures raise SubmissionError carrying the collaborator's message.
        """
        intent = build_order_intent(state, OrderMode(mode), collage_image)

        try:
            if intent.mode == OrderMode.CART:
                await self.collaborator.add_to_cart(intent)
            else:
                await self.collaborator.buy_now(intent)
        except Exception as e:
            logger.error(f"Order collaborator rejected {intent.mode.value} for {intent.product_id}: {e}")
            raise SubmissionError(str(e) or "Failed to submit order",
                                  details={'mode': intent.mode.value}) from e

        logger.info(f"Submitted {intent.mode.value} for {intent.product_id}: "
                    f"{intent.quantity} x {intent.unit_price}")
        if intent.mode == OrderMode.CART:
            message = "Added to cart!"
        else:
            message = "Proceeding to checkout"
        return SubmissionResult(True, message, intent)
