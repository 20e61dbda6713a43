"""Box/piece arithmetic shared by assignment, billing and the day summary.

Every stock quantity is a ``(boxes, pcs)`` pair; the canonical form is the
total in pieces. All conversions go through the functions here so the three
subsystems round the same way.
"""
import math
from decimal import Decimal, ROUND_HALF_UP

DEFAULT_PCS_PER_BOX = 24


def to_pieces(boxes: int, pcs: int, pcs_per_box: int) -> int:
    return int(boxes or 0) * pcs_per_box + int(pcs or 0)


def from_pieces(total_pcs: int, pcs_per_box: int) -> tuple[int, int]:
    return total_pcs // pcs_per_box, total_pcs % pcs_per_box


def _num(x) -> float | None:
    if x is None:
        return None
    try:
        return float(x)
    except (TypeError, ValueError):
        return None


def resolve_pcs_per_box(pcs_per_box=None, box_price=None, pcs_price=None) -> int:
    """Configured value if positive, else the price ratio, else 24."""
    configured = _num(pcs_per_box)
    if configured is not None and configured > 0:
        return int(configured)
    bp = _num(box_price)
    if bp is None:
        return DEFAULT_PCS_PER_BOX
    pp = _num(pcs_price)
    if pp is None:
        pp = bp / DEFAULT_PCS_PER_BOX
    if pp == 0:
        return DEFAULT_PCS_PER_BOX
    ratio = bp / pp
    if not math.isfinite(ratio):
        return DEFAULT_PCS_PER_BOX
    # half-up, not banker's rounding
    ratio = int(Decimal(str(ratio)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return ratio if ratio > 0 else DEFAULT_PCS_PER_BOX


def product_pcs_per_box(product) -> int:
    box_price = getattr(product, "box_price", None)
    if box_price is None:
        box_price = getattr(product, "price", None)
    return resolve_pcs_per_box(
        getattr(product, "pcs_per_box", None), box_price, getattr(product, "pcs_price", None)
    )


def product_prices(product, pcs_per_box: int | None = None) -> tuple[float, float]:
    """(box_price, pcs_price) with the piece price derived when not set."""
    ppb = pcs_per_box or product_pcs_per_box(product)
    box_price = _num(getattr(product, "box_price", None))
    if box_price is None:
        box_price = _num(getattr(product, "price", None)) or 0.0
    pcs_price = _num(getattr(product, "pcs_price", None))
    if pcs_price is None:
        pcs_price = box_price / ppb
    return box_price, pcs_price
