"""
Variant-specific gallery images.

variant_images maps keys to image URLs: "default", "size:<value>",
"frame:<value>", or combinations like "frame:Black,size:16x12".
"""

import json
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger


VariantImages = Dict[str, List[str]]


def parse_variant_images(data: Any) -> VariantImages:
    """Parse variant_images from a catalog record (JSON string or mapping)"""
    if not data:
        return {}
    if isinstance(data, str):
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed variant_images: {e}")
            return {}
        return parsed if isinstance(parsed, dict) else {}
    if isinstance(data, Mapping):
        return dict(data)
    return {}


def _active(selection: Mapping[str, Optional[str]]) -> List[tuple]:
    return sorted((k, v) for k, v in selection.items() if v)


def generate_variant_key(selection: Mapping[str, Optional[str]]) -> str:
    active = _active(selection)
    if not active:
        return 'default'
    return ','.join(f"{k}:{v}" for k, v in active)


def get_variant_images(variant_images: Optional[Mapping[str, List[str]]],
                       base_images: Optional[List[str]],
                       selection: Mapping[str, Optional[str]]) -> List[str]:
    """
    Images for a variant combination.

    Tries the full combination key, then each single key in selection
    order, then "default" (all case-insensitive), then the base images.
    """
    if not variant_images:
        return list(base_images or [])

    keys = []
    if _active(selection):
        keys.append(generate_variant_key(selection))
    keys.extend(f"{k}:{v}" for k, v in selection.items() if v)
    keys.append('default')

    lowered = {k.lower(): v for k, v in variant_images.items()}
    for key in keys:
        images = lowered.get(key.lower())
        if images:
            return list(images)

    return list(base_images or [])
