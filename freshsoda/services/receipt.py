from datetime import datetime

from freshsoda.config import settings
from freshsoda.schemas.summary import DaySummary

WIDTH = 32  # 58mm thermal roll
RULE = "=" * WIDTH
DASH = "-" * WIDTH


def _generated(ts: datetime) -> str:
    # e.g. 18/10/2026 6:37 pm
    hour = ts.hour % 12 or 12
    return f"{ts:%d/%m/%Y} {hour}:{ts:%M} {'am' if ts.hour < 12 else 'pm'}"


def format_day_receipt(summary: DaySummary, route_name: str, generated_at: datetime,
                       title: str | None = None, footer: str | None = None) -> str:
    """Plain-text day summary for the driver's thermal printer."""
    t = summary.totals
    cur = settings.CURRENCY_SYMBOL
    grand = f"{summary.grand_total:.2f}"
    title = title or settings.RECEIPT_TITLE
    footer = footer if footer is not None else settings.RECEIPT_FOOTER

    lines = [
        RULE,
        title.center(WIDTH).rstrip(),
        RULE,
        f"Date  : {summary.work_date:%d-%m-%Y}",
        f"Route : {route_name}",
        DASH,
        f"Start : {t.start_box}B | {t.start_pcs}p",
        f"Sold  : {t.sold_box}B | {t.sold_pcs}p",
        f"Left  : {t.remaining_box}B | {t.remaining_pcs}p",
        f"Total Revenue: {cur}{grand}",
        DASH,
        # 15 + 1 + 8 + 1 + 7 = 32
        f"{'Item':<15}|{'S(B|p)':<8}|{'L(B|p)':<7}",
        "---------------+--------+-------",
    ]
    for it in summary.items:
        sold = f"{it.sold_box}|{it.sold_pcs}"
        left = f"{it.remaining_box}|{it.remaining_pcs}"
        lines.append(f"{it.product_name[:15]:<15}|{sold:<8}|{left:<7}")
    lines += [
        DASH,
        f"Totals Sold  : {t.sold_box}B | {t.sold_pcs}p",
        f"Totals Left  : {t.remaining_box}B | {t.remaining_pcs}p",
        DASH,
        f"Grand Total: {cur}{grand}",
        DASH,
        f"Generated: {_generated(generated_at)}",
    ]
    if footer:
        lines.append(footer[:WIDTH])
    lines.append(RULE)
    return "\n".join(lines) + "\n"
