"""Ingestion of the ``products_sold`` column of a sale.

Older clients stored it as a list, as ``{"items": [...]}`` or as a JSON string
of either; this is the only place that knows about those shapes.
"""
import json
import logging
from dataclasses import dataclass
from pydantic import TypeAdapter, ValidationError

from freshsoda.schemas.sales import SaleRecord, SoldLineItem

logger = logging.getLogger(__name__)

_lines = TypeAdapter(list[SoldLineItem])


@dataclass(frozen=True)
class Parsed:
    items: list[SoldLineItem]


@dataclass(frozen=True)
class Malformed:
    reason: str


def _unwrap(ps):
    if isinstance(ps, list):
        return ps
    if isinstance(ps, dict) and isinstance(ps.get("items"), list):
        return ps["items"]
    return None


def normalize_products_sold(ps) -> Parsed | Malformed:
    if ps is None or ps == "" or ps == {}:
        return Parsed([])
    if isinstance(ps, (bytes, str)):
        try:
            ps = json.loads(ps)
        except ValueError as e:
            return Malformed(f"not valid JSON: {e}")
    raw = _unwrap(ps)
    if raw is None:
        return Malformed(f"unexpected shape: {type(ps).__name__}")
    try:
        return Parsed(_lines.validate_python(raw))
    except ValidationError as e:
        return Malformed(f"bad line item: {e.errors()[0].get('msg')}")


def sale_record(row: dict) -> SaleRecord:
    """Build a SaleRecord from a raw ``sale`` row (db or REST)."""
    parsed = normalize_products_sold(row.get("products_sold"))
    if isinstance(parsed, Malformed):
        logger.warning("sale %s has malformed products_sold: %s", row.get("id"), parsed.reason)
    return SaleRecord(
        id=str(row["id"]),
        route_id=str(row["route_id"]),
        date=row["date"],
        driver_id=row.get("auth_user_id"),
        shop_name=row.get("shop_name"),
        items=parsed.items if isinstance(parsed, Parsed) else [],
        malformed=isinstance(parsed, Malformed),
        total_amount=float(row.get("total_amount") or 0),
    )
