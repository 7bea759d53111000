"""
Price composition engine.

Total = (base price + sum of the selected choice's delta in every
dimension) x quantity. Pure projection of the current selections; callers
re-run it after every state change.
"""

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Tuple

from loguru import logger

from .errors import ValidationError
from .options import OptionChoice, OptionDimension


@dataclass(frozen=True)
class PriceLine:
    dimension: str
    choice: str
    delta: int


@dataclass(frozen=True)
class PriceBreakdown:
    base_price: int
    lines: Tuple[PriceLine, ...]
    quantity: int
    unit_price: int
    total: int

    def to_dict(self):
        return {
            'base_price': self.base_price,
            'lines': [line.__dict__ for line in self.lines],
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'total': self.total,
        }


def selected_choices(dimensions: Iterable[OptionDimension],
                     selections: Mapping[str, str]) -> List[Tuple[OptionDimension, OptionChoice]]:
    """Resolve every dimension's selected choice; a missing selection is an error."""
    resolved = []
    for dim in dimensions:
        choice_id = selections.get(dim.id)
        if choice_id is None:
            raise ValidationError(
                f"No {dim.label.lower()} selected",
                details={'dimension': dim.id}
            )
        resolved.append((dim, dim.get(choice_id)))
    return resolved


def _check_quantity(quantity: int) -> None:
    if not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(
            "Quantity must be at least 1",
            details={'quantity': quantity}
        )


def compute_total(base_price: int,
                  dimensions: Iterable[OptionDimension],
                  selections: Mapping[str, str],
                  quantity: int = 1) -> int:
    """(base_price + sum of selected deltas) x quantity, never negative"""
    _check_quantity(quantity)
    unit = base_price + sum(choice.price_delta for _, choice in selected_choices(dimensions, selections))
    return max(unit, 0) * quantity


def price_breakdown(base_price: int,
                    dimensions: Iterable[OptionDimension],
                    selections: Mapping[str, str],
                    quantity: int = 1) -> PriceBreakdown:
    _check_quantity(quantity)
    lines = tuple(
        PriceLine(dim.label, choice.label, choice.price_delta)
        for dim, choice in selected_choices(dimensions, selections)
    )
    unit_price = max(base_price + sum(line.delta for line in lines), 0)
    breakdown = PriceBreakdown(
        base_price=base_price,
        lines=lines,
        quantity=quantity,
        unit_price=unit_price,
        total=unit_price * quantity,
    )
    logger.debug(f"Price breakdown: base {base_price} + "
                 f"{[line.delta for line in lines]} x {quantity} = {breakdown.total}")
    return breakdown
