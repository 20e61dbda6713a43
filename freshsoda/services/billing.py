from decimal import Decimal, ROUND_HALF_UP

def _money(x) -> float:
    if x is None:
        x = 0
    return float(Decimal(str(x)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))

def line_total(unit: str, quantity: int, *, total=None, price=None,
               box_price: float = 0.0, pcs_price: float = 0.0) -> float:
    """Revenue of one sold line.

    A stored ``total`` wins, then ``quantity * price``, then the catalog price
    for the line's unit.
    """
    if total is not None:
        return float(total)
    if price is not None:
        return quantity * float(price)
    return quantity * (box_price if unit == "box" else pcs_price)

def line_pieces(unit: str, quantity: int, pcs_per_box: int) -> int:
    return quantity * pcs_per_box if unit == "box" else quantity
