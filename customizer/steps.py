"""
Step controller for the customization wizard.

All page state lives in one immutable CustomizationState. Every
transition is a function that takes a state and returns a new one, or
raises without touching the original:

    design --continue--> upload --continue (guarded)--> preview
    design <---back----- upload <----------back-------- preview
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from loguru import logger

from .errors import StepTransitionError, ValidationError
from .ingest import QualityRating, UploadedImage
from .options import (
    DESIGN_TEMPLATES, SIZE, DesignTemplate, OptionChoice, ProductOptions
)
from .pricing import PriceBreakdown, price_breakdown


class Step(str, Enum):
    DESIGN = "design"
    UPLOAD = "upload"
    PREVIEW = "preview"


EMPTY_SLOTS: Tuple[Optional[UploadedImage], ...] = (None, None, None, None)


@dataclass(frozen=True)
class CustomizationState:
    product: ProductOptions
    selections: Mapping[str, str]
    template: DesignTemplate
    step: Step = Step.DESIGN
    uploaded_image: Optional[UploadedImage] = None
    collage_slots: Tuple[Optional[UploadedImage], ...] = EMPTY_SLOTS
    custom_text: str = ""
    quantity: int = 1
    # Set whenever the surface's sizing parameters changed
    canvas_dirty: bool = True
    details: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_collage(self) -> bool:
        return self.template.is_collage

    @property
    def has_at_least_one_image(self) -> bool:
        return any(slot is not None for slot in self.collage_slots)

    @property
    def has_required_image(self) -> bool:
        if self.is_collage:
            return self.has_at_least_one_image
        return self.uploaded_image is not None

    def selected(self, dimension_id: str) -> Optional[OptionChoice]:
        dim = self.product.dimension(dimension_id)
        if dim is None or dimension_id not in self.selections:
            return None
        return dim.get(self.selections[dimension_id])

    @property
    def target_inches(self) -> Optional[Tuple[float, float]]:
        size = self.selected(SIZE)
        if size is None:
            return None
        return size.metadata.get('inches')


def initial_state(product: ProductOptions) -> CustomizationState:
    return CustomizationState(
        product=product,
        selections=product.default_selections(),
        template=product.design_template,
    )


def _require_step(state: CustomizationState, expected: Step, target: Step) -> None:
    if state.step != expected:
        raise StepTransitionError(
            f"Cannot go to {target.value} from {state.step.value}",
            current_step=state.step.value,
            target_step=target.value
        )


def continue_to_upload(state: CustomizationState) -> CustomizationState:
    _require_step(state, Step.DESIGN, Step.UPLOAD)
    return replace(state, step=Step.UPLOAD)


def continue_to_preview(state: CustomizationState) -> CustomizationState:
    _require_step(state, Step.UPLOAD, Step.PREVIEW)
    if not state.has_required_image:
        message = ("Please upload at least one photo for collage" if state.is_collage
                   else "Please upload a photo first")
        logger.warning(f"Blocked preview for {state.product.product_id}: {message}")
        raise StepTransitionError(message, current_step=state.step.value, target_step=Step.PREVIEW.value)
    return replace(state, step=Step.PREVIEW)


def back_to_upload(state: CustomizationState) -> CustomizationState:
    _require_step(state, Step.PREVIEW, Step.UPLOAD)
    return replace(state, step=Step.UPLOAD)


def back_to_design(state: CustomizationState) -> CustomizationState:
    _require_step(state, Step.UPLOAD, Step.DESIGN)
    return replace(state, step=Step.DESIGN)


def select_template(state: CustomizationState, template_id: str) -> CustomizationState:
    """Change template (design step only). The photo is kept; the canvas is rebuilt."""
    if state.step != Step.DESIGN:
        raise StepTransitionError(
            "Go back to the design step to change the template",
            current_step=state.step.value,
            target_step=Step.DESIGN.value
        )
    template = DESIGN_TEMPLATES.get(template_id)
    if template is None:
        raise ValidationError(f"Unknown design template: {template_id}",
                              details={'template': template_id})
    if template == state.template:
        return state
    return replace(state, template=template, canvas_dirty=True)


def select_choice(state: CustomizationState, dimension_id: str, choice_id: str) -> CustomizationState:
    dim = state.product.dimension(dimension_id)
    if dim is None:
        raise ValidationError(f"{state.product.name} has no {dimension_id} option",
                              details={'dimension': dimension_id})
    dim.get(choice_id)
    if state.selections.get(dimension_id) == choice_id:
        return state
    selections: Dict[str, str] = dict(state.selections)
    selections[dimension_id] = choice_id
    return replace(state, selections=selections,
                   canvas_dirty=state.canvas_dirty or dimension_id == SIZE)


def set_quantity(state: CustomizationState, quantity: int) -> CustomizationState:
    if not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Quantity must be at least 1", details={'quantity': quantity})
    return replace(state, quantity=quantity)


def set_custom_text(state: CustomizationState, text: Optional[str]) -> CustomizationState:
    return replace(state, custom_text=text or "")


def set_detail(state: CustomizationState, key: str, value: Optional[str]) -> CustomizationState:
    """Free-form personalisation fields ('Name', 'DOB', ...) joined into the order text."""
    details = dict(state.details)
    if value:
        details[key] = value
    else:
        details.pop(key, None)
    return replace(state, details=details)


def set_uploaded_image(state: CustomizationState, image: UploadedImage) -> CustomizationState:
    return replace(state, uploaded_image=image, canvas_dirty=True)


def clear_uploaded_image(state: CustomizationState) -> CustomizationState:
    return replace(state, uploaded_image=None, canvas_dirty=True)


def set_collage_slots(state: CustomizationState,
                      slots: Tuple[Optional[UploadedImage], ...]) -> CustomizationState:
    if len(slots) != len(EMPTY_SLOTS):
        raise ValidationError(f"Collage needs exactly {len(EMPTY_SLOTS)} slots",
                              details={'slots': len(slots)})
    return replace(state, collage_slots=tuple(slots))


def mark_canvas_built(state: CustomizationState) -> CustomizationState:
    return replace(state, canvas_dirty=False)


def derive_price(state: CustomizationState) -> PriceBreakdown:
    product = state.product
    return price_breakdown(product.base_price, product.dimensions, state.selections, state.quantity)


def derive_quality(state: CustomizationState) -> Optional[QualityRating]:
    if state.uploaded_image is None:
        return None
    return state.uploaded_image.quality_for(state.target_inches)


def compose_custom_text(state: CustomizationState) -> str:
    parts = [state.custom_text.strip()] if state.custom_text.strip() else []
    parts.extend(f"{key}: {value}" for key, value in state.details.items())
    return " | ".join(parts)
