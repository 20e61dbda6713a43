# test_units.py
from types import SimpleNamespace

import pytest

from freshsoda.services.billing import _money, line_total, line_pieces
from freshsoda.services.units import (
    DEFAULT_PCS_PER_BOX, from_pieces, to_pieces, resolve_pcs_per_box, product_pcs_per_box, product_prices,
)

def test_pieces_split_floor_and_remainder():
    assert to_pieces(3, 5, 24) == 77
    assert from_pieces(77, 24) == (3, 5)
    assert from_pieces(72, 24) == (3, 0)
    assert from_pieces(0, 12) == (0, 0)
    assert from_pieces(11, 12) == (0, 11)

@pytest.mark.parametrize("ppb, box_price, pcs_price, expected", [
    (24, 240, 10, 24),          # configured wins
    (12, 240, 10, 12),
    (None, 300, 15, 20),        # ratio of prices
    (0, 300, 15, 20),           # non-positive means unset
    (-4, 300, 15, 20),
    (None, 10, 4, 3),           # 2.5 rounds half up
    (None, 240, None, 24),      # piece price derived from 24
    (None, None, 10, DEFAULT_PCS_PER_BOX),
    (None, 240, 0, DEFAULT_PCS_PER_BOX),
    (None, None, None, DEFAULT_PCS_PER_BOX),
])
def test_resolve_pcs_per_box(ppb, box_price, pcs_price, expected):
    assert resolve_pcs_per_box(ppb, box_price, pcs_price) == expected

def test_product_falls_back_to_legacy_price():
    p = SimpleNamespace(price=120, box_price=None, pcs_price=10, pcs_per_box=None)
    assert product_pcs_per_box(p) == 12
    assert product_prices(p) == (120.0, 10.0)

def test_piece_price_derived_when_missing():
    p = SimpleNamespace(price=0, box_price=240, pcs_price=None, pcs_per_box=24)
    assert product_prices(p) == (240.0, 10.0)

def test_line_total_precedence():
    # stored total is authoritative even when it disagrees with price * qty
    assert line_total("box", 2, total=450, price=240, box_price=240, pcs_price=10) == 450.0
    assert line_total("pcs", 3, price=12, box_price=240, pcs_price=10) == 36.0
    assert line_total("box", 2, box_price=240, pcs_price=10) == 480.0
    assert line_total("pcs", 5, box_price=240, pcs_price=10) == 50.0

def test_line_pieces_and_money():
    assert line_pieces("box", 2, 24) == 48
    assert line_pieces("pcs", 7, 24) == 7
    assert _money(2.675) == 2.68
    assert _money(None) == 0.0
