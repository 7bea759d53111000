"""
Option model for the Print Customizer.

This module handles:
- Selectable option dimensions (size, frame colour, thickness, background)
- Design templates (aspect ratio and overlay treatment)
- Building a product's option model from catalog records, with
  hardcoded defaults for any field the record leaves out
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from .config import ProductConfig, load_product_config
from .errors import ValidationError


@dataclass(frozen=True)
class OptionChoice:
    """One selectable value within a dimension."""
    id: str
    label: str
    price_delta: int = 0
    is_popular: bool = False
    is_none: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OptionDimension:
    """A named axis of customization with an ordered list of choices."""
    id: str
    label: str
    choices: Tuple[OptionChoice, ...]
    default_id: Optional[str] = None

    def __post_init__(self):
        if not self.choices:
            raise ValidationError(f"Option dimension '{self.id}' has no choices")
        if self.default_id is not None and self.default_id not in self.choice_ids:
            raise ValidationError(
                f"Default '{self.default_id}' is not a choice of '{self.id}'",
                details={'dimension': self.id, 'choices': list(self.choice_ids)}
            )

    @property
    def choice_ids(self) -> Tuple[str, ...]:
        return tuple(choice.id for choice in self.choices)

    @property
    def default(self) -> OptionChoice:
        if self.default_id is None:
            return self.choices[0]
        return self.get(self.default_id)

    def get(self, choice_id: str) -> OptionChoice:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        raise ValidationError(
            f"Unknown {self.label.lower()} option: {choice_id}",
            details={'dimension': self.id, 'choice': choice_id}
        )


@dataclass(frozen=True)
class DesignTemplate:
    """Aspect ratio and visual treatment preset."""
    id: str
    label: str
    aspect_ratio: float  # width / height
    overlay_style: str

    @property
    def is_collage(self) -> bool:
        return self.id == COLLAGE


COLLAGE = "collage"

DESIGN_TEMPLATES: Dict[str, DesignTemplate] = {
    "portrait": DesignTemplate("portrait", "Portrait", 3 / 4, "portrait-frame"),
    "landscape": DesignTemplate("landscape", "Landscape", 4 / 3, "landscape-frame"),
    "square": DesignTemplate("square", "Square", 1.0, "square-frame"),
    "dual-border": DesignTemplate("dual-border", "Dual Border", 3 / 4, "dual-border-frame"),
    COLLAGE: DesignTemplate(COLLAGE, "Collage", 1.0, "collage-frame"),
}

# Product id -> template preselected when the page opens
PRODUCT_DESIGN_MAP = {
    "wp-1": "portrait",
    "wp-2": "dual-border",
    "wp-3": "landscape",
    "wp-4": "square",
    "wp-5": "portrait",
    "wp-6": "portrait",
    "wp-7": COLLAGE,
    "wp-8": "portrait",
    "cp-2": "landscape",
    "cp-3": "square",
    "1": "portrait",
    "2": "landscape",
    "3": "square",
}

SIZE = "size"
FRAME = "frame"
THICKNESS = "thickness"
BACKGROUND = "background"


def _choice(id: str, label: str, price_delta: int = 0, **kwargs) -> OptionChoice:
    metadata = kwargs.pop('metadata', {})
    return OptionChoice(id, label, price_delta, metadata=metadata, **kwargs)


DEFAULT_SIZES = (
    _choice("small", "Small (8×10)", 0, metadata={'inches': (8.0, 10.0)}),
    _choice("medium", "Medium (12×16)", 500, metadata={'inches': (12.0, 16.0)}),
    _choice("large", "Large (16×20)", 1200, metadata={'inches': (16.0, 20.0)}),
)

DEFAULT_FRAMES = (
    _choice("none", "No Frame", 0, is_none=True),
    _choice("black", "Black Frame", 299, metadata={'color': '#1a1a1a'}),
    _choice("white", "White Frame", 299, metadata={'color': '#f5f5f5'}),
)

PREMIUM_ACRYLIC_FRAME_COLORS = (
    _choice("red", "Red", metadata={'color': '#dc2626'}),
    _choice("silver", "Silver", metadata={'color': '#c0c0c0'}),
    _choice("golden", "Golden", metadata={'color': '#d4af37'}),
    _choice("purple", "Purple", metadata={'color': '#7c3aed'}),
    _choice("yellow", "Yellow", metadata={'color': '#facc15'}),
    _choice("blue", "Blue", metadata={'color': '#2563eb'}),
)

THICKNESS_OPTIONS = (
    _choice("3mm", "3mm", 0),
    _choice("5mm", "5mm", 100),
    _choice("8mm", "8mm", 200),
)

BACKGROUND_OPTIONS = (
    _choice("none", "None", is_none=True),
    _choice("white", "White", metadata={'color': '#ffffff'}),
    _choice("black", "Black", metadata={'color': '#000000'}),
    _choice("gradient-blue", "Blue Gradient", metadata={'gradient': ('#667eea', '#764ba2')}),
    _choice("gradient-sunset", "Sunset", metadata={'gradient': ('#f093fb', '#f5576c')}),
    _choice("gradient-ocean", "Ocean", metadata={'gradient': ('#4facfe', '#00f2fe')}),
)

DEFAULT_PRODUCT = ProductConfig(
    id="default",
    name="Custom Acrylic Photo",
    category="Acrylic",
    base_price=1299,
)

_SIZE_PATTERN = re.compile(r'(\d+(?:\.\d+)?)\s*[x×X]\s*(\d+(?:\.\d+)?)')


@dataclass(frozen=True)
class ProductOptions:
    """A product's complete, immutable option model."""
    product_id: str
    name: str
    category: str
    base_price: int
    dimensions: Tuple[OptionDimension, ...]
    design_template: DesignTemplate
    images: Tuple[str, ...] = ()
    variant_images: Mapping[str, List[str]] = field(default_factory=dict)
    requires_text: bool = False
    upload_kind: str = "photo"
    quantity_from_size: bool = False

    def dimension(self, dimension_id: str) -> Optional[OptionDimension]:
        for dim in self.dimensions:
            if dim.id == dimension_id:
                return dim
        return None

    def default_selections(self) -> Dict[str, str]:
        return {dim.id: dim.default.id for dim in self.dimensions}

    @property
    def is_acrylic(self) -> bool:
        return is_acrylic_product(self.name, self.category)


def get_design_template(template_id: Optional[str]) -> DesignTemplate:
    """Look up a design template; unknown ids fall back to portrait."""
    template = DESIGN_TEMPLATES.get(template_id or "")
    if template is None:
        logger.debug(f"Unknown design template '{template_id}', using portrait")
        return DESIGN_TEMPLATES["portrait"]
    return template


def design_template_for_product(product_id: Optional[str]) -> DesignTemplate:
    return get_design_template(PRODUCT_DESIGN_MAP.get(product_id or "", "portrait"))


def is_acrylic_product(name: Optional[str], category: Optional[str]) -> bool:
    text = f"{category or ''} {name or ''}".lower()
    return 'acrylic' in text


def is_premium_acrylic_wall_photo(name: Optional[str], category: Optional[str]) -> bool:
    text = f"{category or ''} {name or ''}".lower()
    return 'premium acrylic wall photo' in text


def parse_size_inches(label: str) -> Optional[Tuple[float, float]]:
    """Parse '16x12', '12×18 inch' or 'Small (8×10)' into (width, height)."""
    match = _SIZE_PATTERN.search(label or "")
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))


def quantity_from_label(label: str) -> int:
    """Extract a piece count from a label like '10 Pieces'."""
    match = re.search(r'(\d+)', label or "")
    return int(match.group(1)) if match else 1


def slugify(name: str) -> str:
    return re.sub(r'\s+', '-', (name or "").strip().lower())


def _size_choices(entries: List[Dict]) -> Tuple[OptionChoice, ...]:
    choices = []
    for entry in entries:
        label = entry.get('label') or entry.get('name')
        if not label:
            continue
        metadata = {}
        inches = parse_size_inches(entry.get('dimensions') or label)
        if inches:
            metadata['inches'] = inches
        choices.append(OptionChoice(
            id=entry.get('id') or label,
            label=label,
            price_delta=int(entry.get('price') or 0),
            is_popular=bool(entry.get('popular', False)),
            metadata=metadata,
        ))
    return tuple(choices)


def _frame_choices(entries: List[Dict]) -> Tuple[OptionChoice, ...]:
    choices = []
    for entry in entries:
        label = entry.get('label') or entry.get('name')
        if not label:
            continue
        choice_id = entry.get('id') or slugify(label)
        metadata = {'color': entry['color']} if entry.get('color') else {}
        choices.append(OptionChoice(
            id=choice_id,
            label=label,
            price_delta=int(entry.get('price') or 0),
            is_none=choice_id == 'none' or bool(entry.get('is_none', False)),
            metadata=metadata,
        ))
    return tuple(choices)


def _first(record: Mapping[str, Any], *keys, default=None):
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def build_product_options(record: Mapping[str, Any],
                          template_id: Optional[str] = None) -> ProductOptions:
    """
    Build the option model for a catalog record.

    Accepts both backend records (snake_case) and static catalog entries.
    Missing sizes/frames fall back to the default tables; acrylic products
    get a thickness dimension, other products do not.
    """
    from .variants import parse_variant_images

    product_id = str(_first(record, 'id', default=DEFAULT_PRODUCT.id))
    name = _first(record, 'name', default=DEFAULT_PRODUCT.name)
    category = _first(record, 'category', default=DEFAULT_PRODUCT.category)
    base_price = int(_first(record, 'basePrice', 'base_price', default=DEFAULT_PRODUCT.base_price))

    sizes = _size_choices(record.get('sizes') or []) or DEFAULT_SIZES
    dimensions = [OptionDimension(SIZE, "Size", sizes)]

    if is_premium_acrylic_wall_photo(name, category):
        frames = PREMIUM_ACRYLIC_FRAME_COLORS
    else:
        frames = _frame_choices(record.get('frames') or []) or DEFAULT_FRAMES
    default_frame = 'none' if 'none' in {f.id for f in frames} else None
    dimensions.append(OptionDimension(FRAME, "Frame", frames, default_frame))

    if is_acrylic_product(name, category):
        thickness = _size_choices(record.get('thickness') or []) or THICKNESS_OPTIONS
        dimensions.append(OptionDimension(THICKNESS, "Thickness", thickness))

    if record.get('backgrounds'):
        dimensions.append(OptionDimension(BACKGROUND, "Background", BACKGROUND_OPTIONS))

    template = get_design_template(
        template_id or record.get('design_template') or PRODUCT_DESIGN_MAP.get(product_id)
    )

    options = ProductOptions(
        product_id=product_id,
        name=name,
        category=category,
        base_price=base_price,
        dimensions=tuple(dimensions),
        design_template=template,
        images=tuple(record.get('images') or ()),
        variant_images=parse_variant_images(_first(record, 'variantImages', 'variant_images')),
        requires_text=bool(record.get('requires_text', False)),
        upload_kind=record.get('upload_kind') or "photo",
        quantity_from_size=bool(record.get('quantity_from_size', False)),
    )
    logger.debug(f"Built option model for {product_id}: "
                 f"{[d.id for d in options.dimensions]} on template {template.id}")
    return options


def load_static_catalog() -> Dict[str, ProductConfig]:
    """Static products from config/products.yaml, always including the default."""
    catalog = load_product_config()
    catalog.setdefault(DEFAULT_PRODUCT.id, DEFAULT_PRODUCT)
    return catalog


def resolve_product(product_id: Optional[str],
                    record: Optional[Mapping[str, Any]] = None,
                    catalog: Optional[Dict[str, ProductConfig]] = None) -> ProductOptions:
    """
    Resolve a product's options: a backend record wins, then the static
    catalog entry, then the default product.
    """
    if record:
        return build_product_options(record)

    catalog = catalog if catalog is not None else load_static_catalog()
    static = catalog.get(product_id or "") or catalog.get(DEFAULT_PRODUCT.id, DEFAULT_PRODUCT)
    data = static.model_dump()
    if product_id and static.id == DEFAULT_PRODUCT.id:
        data['id'] = product_id
    return build_product_options(data)
